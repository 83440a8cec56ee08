"""PostgreSQL implementation of AuditSink."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from progress_engine.db.tables import AuditFactRow
from progress_engine.models.audit import AuditFact


class PgAuditSink:
    """Satisfies the AuditSink Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, fact: AuditFact) -> None:
        self._session.add(
            AuditFactRow(
                id=fact.id,
                action=fact.action,
                learner_id=fact.learner_id,
                subject_id=fact.subject_id,
                occurred_at=fact.occurred_at,
                actor=fact.actor,
                metadata_json=fact.metadata,
            )
        )
        await self._session.flush()

    async def list_for_learner(self, learner_id: UUID) -> list[AuditFact]:
        stmt = (
            select(AuditFactRow)
            .where(AuditFactRow.learner_id == learner_id)
            .order_by(AuditFactRow.occurred_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            AuditFact(
                id=r.id,
                action=r.action,
                learner_id=r.learner_id,
                subject_id=r.subject_id,
                occurred_at=r.occurred_at,
                actor=r.actor,
                metadata=dict(r.metadata_json or {}),
            )
            for r in rows
        ]
