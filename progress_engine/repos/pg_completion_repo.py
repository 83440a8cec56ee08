"""PostgreSQL implementation of CompletionRepo."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from progress_engine.db.tables import ResourceCompletionRow, SectionCompletionRow
from progress_engine.models.completion import ResourceCompletion, SectionCompletion


class PgCompletionRepo:
    """Satisfies the CompletionRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- resources ---

    async def get_resource(
        self, learner_id: UUID, resource_id: UUID
    ) -> ResourceCompletion | None:
        row = await self._session.get(ResourceCompletionRow, (learner_id, resource_id))
        return _row_to_resource(row) if row is not None else None

    async def save_resource(self, completion: ResourceCompletion) -> ResourceCompletion:
        values = {
            "learner_id": completion.learner_id,
            "resource_id": completion.resource_id,
            "completed": completion.completed,
            "completed_at": completion.completed_at,
            "note": completion.note,
            "marked_for_revision": completion.marked_for_revision,
            "time_spent": completion.time_spent,
        }
        stmt = insert(ResourceCompletionRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["learner_id", "resource_id"],
            set_={
                k: stmt.excluded[k]
                for k in values
                if k not in ("learner_id", "resource_id")
            },
        )
        await self._session.execute(stmt)
        return completion

    async def delete_resource(self, learner_id: UUID, resource_id: UUID) -> bool:
        stmt = delete(ResourceCompletionRow).where(
            ResourceCompletionRow.learner_id == learner_id,
            ResourceCompletionRow.resource_id == resource_id,
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def resource_completions(
        self, learner_id: UUID, resource_ids: Iterable[UUID]
    ) -> dict[UUID, ResourceCompletion]:
        ids = list(resource_ids)
        if not ids:
            return {}
        stmt = select(ResourceCompletionRow).where(
            ResourceCompletionRow.learner_id == learner_id,
            ResourceCompletionRow.resource_id.in_(ids),
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return {r.resource_id: _row_to_resource(r) for r in rows}

    # --- sections ---

    async def get_section(
        self, learner_id: UUID, section_id: UUID
    ) -> SectionCompletion | None:
        row = await self._session.get(SectionCompletionRow, (learner_id, section_id))
        return _row_to_section(row) if row is not None else None

    async def save_section(self, completion: SectionCompletion) -> SectionCompletion:
        table = SectionCompletionRow.__table__
        stmt = insert(SectionCompletionRow).values(
            learner_id=completion.learner_id,
            section_id=completion.section_id,
            completed=completion.completed,
            completed_at=completion.completed_at,
            note=completion.note,
            marked_for_revision=completion.marked_for_revision,
        )
        # completed is one-way and completed_at keeps the first value,
        # even when two writers race on the same row.
        stmt = stmt.on_conflict_do_update(
            index_elements=["learner_id", "section_id"],
            set_={
                "completed": table.c.completed | stmt.excluded.completed,
                "completed_at": func.coalesce(
                    table.c.completed_at, stmt.excluded.completed_at
                ),
                "note": stmt.excluded.note,
                "marked_for_revision": stmt.excluded.marked_for_revision,
            },
        ).returning(SectionCompletionRow)
        row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_section(row)

    async def section_completions(
        self, learner_id: UUID, section_ids: Iterable[UUID]
    ) -> dict[UUID, SectionCompletion]:
        ids = list(section_ids)
        if not ids:
            return {}
        stmt = select(SectionCompletionRow).where(
            SectionCompletionRow.learner_id == learner_id,
            SectionCompletionRow.section_id.in_(ids),
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return {r.section_id: _row_to_section(r) for r in rows}

    async def marked_for_revision(
        self, learner_id: UUID
    ) -> tuple[list[SectionCompletion], list[ResourceCompletion]]:
        section_stmt = select(SectionCompletionRow).where(
            SectionCompletionRow.learner_id == learner_id,
            SectionCompletionRow.marked_for_revision.is_(True),
        )
        resource_stmt = select(ResourceCompletionRow).where(
            ResourceCompletionRow.learner_id == learner_id,
            ResourceCompletionRow.marked_for_revision.is_(True),
        )
        sections = (await self._session.execute(section_stmt)).scalars().all()
        resources = (await self._session.execute(resource_stmt)).scalars().all()
        return (
            [_row_to_section(r) for r in sections],
            [_row_to_resource(r) for r in resources],
        )


def _row_to_resource(row: ResourceCompletionRow) -> ResourceCompletion:
    return ResourceCompletion(
        learner_id=row.learner_id,
        resource_id=row.resource_id,
        completed=row.completed,
        completed_at=row.completed_at,
        note=row.note,
        marked_for_revision=row.marked_for_revision,
        time_spent=row.time_spent,
    )


def _row_to_section(row: SectionCompletionRow) -> SectionCompletion:
    return SectionCompletion(
        learner_id=row.learner_id,
        section_id=row.section_id,
        completed=row.completed,
        completed_at=row.completed_at,
        note=row.note,
        marked_for_revision=row.marked_for_revision,
    )
