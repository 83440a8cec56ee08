"""PostgreSQL implementations of LearnerRepo and CohortRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from progress_engine.db.tables import CohortRow, LearnerRow
from progress_engine.models.learner import Cohort, Learner


class PgLearnerRepo:
    """Satisfies the LearnerRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, learner_id: UUID) -> Learner | None:
        stmt = select(LearnerRow).where(LearnerRow.id == learner_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return Learner(id=row.id, name=row.name, email=row.email, status=row.status)

    async def add(self, learner: Learner) -> None:
        self._session.add(
            LearnerRow(
                id=learner.id,
                name=learner.name,
                email=learner.email,
                status=learner.status,
            )
        )
        await self._session.flush()

    async def set_status(self, learner_id: UUID, status: str) -> None:
        stmt = update(LearnerRow).where(LearnerRow.id == learner_id).values(status=status)
        await self._session.execute(stmt)

    async def lock(self, learner_id: UUID) -> None:
        # Row lock held to commit: concurrent completions for the same
        # learner queue here, so each one counts the others' sections.
        stmt = (
            select(LearnerRow.id).where(LearnerRow.id == learner_id).with_for_update()
        )
        await self._session.execute(stmt)


class PgCohortRepo:
    """Satisfies the CohortRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, cohort_id: UUID) -> Cohort | None:
        stmt = select(CohortRow).where(CohortRow.id == cohort_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return Cohort(id=row.id, name=row.name, is_active=row.is_active)

    async def add(self, cohort: Cohort) -> None:
        self._session.add(
            CohortRow(id=cohort.id, name=cohort.name, is_active=cohort.is_active)
        )
        await self._session.flush()
