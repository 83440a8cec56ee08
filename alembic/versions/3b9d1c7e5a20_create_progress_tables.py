"""create progress tables

Revision ID: 3b9d1c7e5a20
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9d1c7e5a20"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kwargs)


def upgrade() -> None:
    op.create_table(
        "learners",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
    )
    op.create_table(
        "cohorts",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "leagues",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
    )
    op.create_table(
        "weeks",
        _uuid("id", primary_key=True),
        _uuid(
            "league_id",
            sa.ForeignKey("leagues.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
    )
    op.create_table(
        "sections",
        _uuid("id", primary_key=True),
        _uuid(
            "week_id",
            sa.ForeignKey("weeks.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
    )
    op.create_table(
        "resources",
        _uuid("id", primary_key=True),
        _uuid(
            "section_id",
            sa.ForeignKey("sections.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="article"),
        sa.Column("url", sa.Text(), nullable=False, server_default=""),
    )

    op.create_table(
        "enrollments",
        _uuid("id", primary_key=True),
        _uuid("learner_id", sa.ForeignKey("learners.id"), nullable=False, index=True),
        _uuid("cohort_id", sa.ForeignKey("cohorts.id"), nullable=False),
        _uuid("league_id", sa.ForeignKey("leagues.id"), nullable=False),
        sa.Column("enrolled_at", sa.Integer(), nullable=False),
        _uuid("enrolled_by", nullable=True),
        sa.UniqueConstraint("learner_id", "cohort_id", "league_id"),
    )

    op.create_table(
        "resource_completions",
        _uuid("learner_id", sa.ForeignKey("learners.id"), primary_key=True),
        _uuid(
            "resource_id",
            sa.ForeignKey("resources.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column(
            "marked_for_revision", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("time_spent", sa.Integer(), nullable=True),
    )
    op.create_table(
        "section_completions",
        _uuid("learner_id", sa.ForeignKey("learners.id"), primary_key=True),
        _uuid(
            "section_id",
            sa.ForeignKey("sections.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column(
            "marked_for_revision", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
    )

    op.create_table(
        "badges",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("image_url", sa.Text(), nullable=False, server_default=""),
        _uuid(
            "league_id",
            sa.ForeignKey("leagues.id", ondelete="SET NULL"),
            nullable=True,
            unique=True,
        ),
    )
    op.create_table(
        "badge_grants",
        _uuid("id", primary_key=True),
        _uuid("learner_id", sa.ForeignKey("learners.id"), nullable=False),
        _uuid(
            "badge_id", sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("granted_at", sa.Integer(), nullable=False),
        sa.Column("granted_by", sa.String(length=64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.UniqueConstraint(
            "learner_id", "badge_id", name="uq_badge_grants_learner_badge"
        ),
    )

    op.create_table(
        "audit_facts",
        _uuid("id", primary_key=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        _uuid("learner_id", nullable=False, index=True),
        _uuid("subject_id", nullable=False),
        sa.Column("occurred_at", sa.Integer(), nullable=False),
        sa.Column("actor", sa.String(length=64), nullable=True),
        sa.Column(
            "metadata_json",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )


def downgrade() -> None:
    for table in (
        "audit_facts",
        "badge_grants",
        "badges",
        "section_completions",
        "resource_completions",
        "enrollments",
        "resources",
        "sections",
        "weeks",
        "leagues",
        "cohorts",
        "learners",
    ):
        op.drop_table(table)
