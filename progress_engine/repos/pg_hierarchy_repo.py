"""PostgreSQL implementation of HierarchyStore."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import literal, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from progress_engine.db.tables import LeagueRow, ResourceRow, SectionRow, WeekRow
from progress_engine.models.hierarchy import League, NodeRef, Resource, Section, Week


class PgHierarchyStore:
    """Satisfies the HierarchyStore Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_league(self, league_id: UUID) -> League | None:
        row = await self._session.get(LeagueRow, league_id)
        return _row_to_league(row) if row is not None else None

    async def get_week(self, week_id: UUID) -> Week | None:
        row = await self._session.get(WeekRow, week_id)
        return _row_to_week(row) if row is not None else None

    async def get_section(self, section_id: UUID) -> Section | None:
        row = await self._session.get(SectionRow, section_id)
        return _row_to_section(row) if row is not None else None

    async def get_resource(self, resource_id: UUID) -> Resource | None:
        row = await self._session.get(ResourceRow, resource_id)
        return _row_to_resource(row) if row is not None else None

    async def list_leagues(self) -> list[League]:
        stmt = select(LeagueRow).order_by(LeagueRow.name)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_league(r) for r in rows]

    async def weeks_for(self, league_ids: Iterable[UUID]) -> list[Week]:
        ids = list(league_ids)
        if not ids:
            return []
        stmt = select(WeekRow).where(WeekRow.league_id.in_(ids)).order_by(WeekRow.order)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_week(r) for r in rows]

    async def sections_for(self, week_ids: Iterable[UUID]) -> list[Section]:
        ids = list(week_ids)
        if not ids:
            return []
        stmt = (
            select(SectionRow)
            .where(SectionRow.week_id.in_(ids))
            .order_by(SectionRow.order)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_section(r) for r in rows]

    async def resources_for(self, section_ids: Iterable[UUID]) -> list[Resource]:
        ids = list(section_ids)
        if not ids:
            return []
        stmt = (
            select(ResourceRow)
            .where(ResourceRow.section_id.in_(ids))
            .order_by(ResourceRow.order)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_resource(r) for r in rows]

    async def locate(self, node_id: UUID) -> NodeRef | None:
        # One round-trip across the four tables.
        stmt = union_all(
            select(literal("league").label("kind")).where(LeagueRow.id == node_id),
            select(literal("week").label("kind")).where(WeekRow.id == node_id),
            select(literal("section").label("kind")).where(SectionRow.id == node_id),
            select(literal("resource").label("kind")).where(ResourceRow.id == node_id),
        )
        kind = (await self._session.execute(stmt)).scalars().first()
        if kind is None:
            return None
        return NodeRef(kind, node_id)

    async def children_of(self, node_id: UUID) -> list[NodeRef]:
        ref = await self.locate(node_id)
        if ref is None or ref.kind == "resource":
            return []
        if ref.kind == "league":
            return [NodeRef("week", w.id) for w in await self.weeks_for([node_id])]
        if ref.kind == "week":
            return [NodeRef("section", s.id) for s in await self.sections_for([node_id])]
        return [NodeRef("resource", r.id) for r in await self.resources_for([node_id])]

    async def parent_of(self, node_id: UUID) -> NodeRef | None:
        ref = await self.locate(node_id)
        if ref is None or ref.kind == "league":
            return None
        if ref.kind == "week":
            week = await self.get_week(node_id)
            return NodeRef("league", week.league_id) if week else None
        if ref.kind == "section":
            section = await self.get_section(node_id)
            return NodeRef("week", section.week_id) if section else None
        resource = await self.get_resource(node_id)
        return NodeRef("section", resource.section_id) if resource else None


def _row_to_league(row: LeagueRow) -> League:
    return League(id=row.id, name=row.name, description=row.description or "")


def _row_to_week(row: WeekRow) -> Week:
    return Week(id=row.id, league_id=row.league_id, order=row.order, name=row.name)


def _row_to_section(row: SectionRow) -> Section:
    return Section(id=row.id, week_id=row.week_id, order=row.order, name=row.name)


def _row_to_resource(row: ResourceRow) -> Resource:
    return Resource(
        id=row.id,
        section_id=row.section_id,
        order=row.order,
        title=row.title,
        type=row.type,
        url=row.url or "",
    )
