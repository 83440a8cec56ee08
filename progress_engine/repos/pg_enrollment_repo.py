"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import exists, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import ColumnElement

from progress_engine.db.tables import EnrollmentRow
from progress_engine.models.enrollment import Enrollment
from progress_engine.services.errors import StorageConflict


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(
        self, learner_id: UUID, cohort_id: UUID, league_id: UUID
    ) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.learner_id == learner_id,
            EnrollmentRow.cohort_id == cohort_id,
            EnrollmentRow.league_id == league_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def add(self, enrollment: Enrollment) -> None:
        stmt = (
            insert(EnrollmentRow)
            .values(
                id=enrollment.id,
                learner_id=enrollment.learner_id,
                cohort_id=enrollment.cohort_id,
                league_id=enrollment.league_id,
                enrolled_at=enrollment.enrolled_at,
                enrolled_by=enrollment.enrolled_by,
            )
            .on_conflict_do_nothing(
                index_elements=["learner_id", "cohort_id", "league_id"]
            )
            .returning(EnrollmentRow.id)
        )
        inserted = (await self._session.execute(stmt)).scalar_one_or_none()
        if inserted is None:
            raise StorageConflict("enrollment already exists")

    async def is_enrolled_in_league(self, learner_id: UUID, league_id: UUID) -> bool:
        stmt = select(
            exists().where(
                EnrollmentRow.learner_id == learner_id,
                EnrollmentRow.league_id == league_id,
            )
        )
        return bool((await self._session.execute(stmt)).scalar())

    async def list_for_learner(self, learner_id: UUID) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.learner_id == learner_id)
            .order_by(EnrollmentRow.enrolled_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def list_page(
        self,
        *,
        offset: int,
        limit: int,
        cohort_id: UUID | None = None,
        league_id: UUID | None = None,
        learner_id: UUID | None = None,
    ) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .where(*_filters(cohort_id, league_id, learner_id))
            .order_by(EnrollmentRow.enrolled_at.desc(), EnrollmentRow.id)
            .offset(offset)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def count(
        self,
        *,
        cohort_id: UUID | None = None,
        league_id: UUID | None = None,
        learner_id: UUID | None = None,
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(EnrollmentRow)
            .where(*_filters(cohort_id, league_id, learner_id))
        )
        return (await self._session.execute(stmt)).scalar_one()


def _filters(
    cohort_id: UUID | None, league_id: UUID | None, learner_id: UUID | None
) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = []
    if cohort_id is not None:
        clauses.append(EnrollmentRow.cohort_id == cohort_id)
    if league_id is not None:
        clauses.append(EnrollmentRow.league_id == league_id)
    if learner_id is not None:
        clauses.append(EnrollmentRow.learner_id == learner_id)
    return clauses


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        learner_id=row.learner_id,
        cohort_id=row.cohort_id,
        league_id=row.league_id,
        enrolled_at=row.enrolled_at,
        enrolled_by=row.enrolled_by,
    )
