"""PostgreSQL implementation of BadgeRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from progress_engine.db.tables import BadgeGrantRow, BadgeRow
from progress_engine.models.badge import Badge, BadgeGrant
from progress_engine.services.errors import StorageConflict


class PgBadgeRepo:
    """Satisfies the BadgeRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, badge_id: UUID) -> Badge | None:
        row = await self._session.get(BadgeRow, badge_id)
        return _row_to_badge(row) if row is not None else None

    async def for_league(self, league_id: UUID) -> Badge | None:
        stmt = select(BadgeRow).where(BadgeRow.league_id == league_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_badge(row) if row is not None else None

    async def add(self, badge: Badge) -> None:
        self._session.add(
            BadgeRow(
                id=badge.id,
                name=badge.name,
                description=badge.description,
                image_url=badge.image_url,
                league_id=badge.league_id,
            )
        )
        try:
            await self._session.flush()
        except IntegrityError:
            raise StorageConflict("league already has a badge") from None

    async def get_grant(self, learner_id: UUID, badge_id: UUID) -> BadgeGrant | None:
        stmt = select(BadgeGrantRow).where(
            BadgeGrantRow.learner_id == learner_id,
            BadgeGrantRow.badge_id == badge_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_grant(row) if row is not None else None

    async def add_grant(self, grant: BadgeGrant) -> BadgeGrant:
        # ON CONFLICT DO NOTHING keeps the transaction usable after losing
        # the race; a plain INSERT would abort it with an IntegrityError.
        stmt = (
            insert(BadgeGrantRow)
            .values(
                id=grant.id,
                learner_id=grant.learner_id,
                badge_id=grant.badge_id,
                granted_at=grant.granted_at,
                granted_by=grant.granted_by,
                reason=grant.reason,
            )
            .on_conflict_do_nothing(constraint="uq_badge_grants_learner_badge")
            .returning(BadgeGrantRow.id)
        )
        inserted = (await self._session.execute(stmt)).scalar_one_or_none()
        if inserted is None:
            raise StorageConflict("badge already granted")
        return grant

    async def delete_grant(self, learner_id: UUID, badge_id: UUID) -> bool:
        stmt = delete(BadgeGrantRow).where(
            BadgeGrantRow.learner_id == learner_id,
            BadgeGrantRow.badge_id == badge_id,
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def grants_for_learner(self, learner_id: UUID) -> list[BadgeGrant]:
        stmt = (
            select(BadgeGrantRow)
            .where(BadgeGrantRow.learner_id == learner_id)
            .order_by(BadgeGrantRow.granted_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_grant(r) for r in rows]

    async def list_all(self) -> list[Badge]:
        stmt = select(BadgeRow).order_by(BadgeRow.name)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_badge(r) for r in rows]

    async def grant_counts(self) -> dict[UUID, int]:
        stmt = select(BadgeGrantRow.badge_id, func.count()).group_by(
            BadgeGrantRow.badge_id
        )
        return {badge_id: n for badge_id, n in (await self._session.execute(stmt)).all()}

    async def earner_count(self) -> int:
        stmt = select(func.count(distinct(BadgeGrantRow.learner_id)))
        return (await self._session.execute(stmt)).scalar_one()

    async def recent_grants(self, limit: int) -> list[BadgeGrant]:
        stmt = (
            select(BadgeGrantRow)
            .order_by(BadgeGrantRow.granted_at.desc(), BadgeGrantRow.id)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_grant(r) for r in rows]


def _row_to_badge(row: BadgeRow) -> Badge:
    return Badge(
        id=row.id,
        name=row.name,
        description=row.description or "",
        image_url=row.image_url or "",
        league_id=row.league_id,
    )


def _row_to_grant(row: BadgeGrantRow) -> BadgeGrant:
    return BadgeGrant(
        id=row.id,
        learner_id=row.learner_id,
        badge_id=row.badge_id,
        granted_at=row.granted_at,
        granted_by=row.granted_by,
        reason=row.reason,
    )
