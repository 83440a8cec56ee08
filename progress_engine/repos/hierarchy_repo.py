"""Read access to the League → Week → Section → Resource structure.

The batch readers (``weeks_for``, ``sections_for``, ``resources_for``) take
a set of parent ids and return every child in one call, so aggregation
walks the tree one level per query instead of one query per node.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol
from uuid import UUID

from progress_engine.models.hierarchy import League, NodeRef, Resource, Section, Week


class HierarchyStore(Protocol):
    async def get_league(self, league_id: UUID) -> League | None: ...
    async def get_week(self, week_id: UUID) -> Week | None: ...
    async def get_section(self, section_id: UUID) -> Section | None: ...
    async def get_resource(self, resource_id: UUID) -> Resource | None: ...
    async def list_leagues(self) -> list[League]: ...
    async def weeks_for(self, league_ids: Iterable[UUID]) -> list[Week]: ...
    async def sections_for(self, week_ids: Iterable[UUID]) -> list[Section]: ...
    async def resources_for(self, section_ids: Iterable[UUID]) -> list[Resource]: ...
    async def locate(self, node_id: UUID) -> NodeRef | None: ...
    async def children_of(self, node_id: UUID) -> list[NodeRef]: ...
    async def parent_of(self, node_id: UUID) -> NodeRef | None: ...


async def league_of(store: HierarchyStore, node_id: UUID) -> UUID | None:
    """Walk parent edges from any node up to its league id."""
    ref = await store.locate(node_id)
    while ref is not None and ref.kind != "league":
        ref = await store.parent_of(ref.id)
    return ref.id if ref is not None else None


class InMemoryHierarchyStore:
    """Dict-backed hierarchy for dev and tests.

    The ``add_*`` methods stand in for the content-management service
    that owns the structure in production.
    """

    def __init__(self) -> None:
        self._leagues: dict[UUID, League] = {}
        self._weeks: dict[UUID, Week] = {}
        self._sections: dict[UUID, Section] = {}
        self._resources: dict[UUID, Resource] = {}

    # --- seeding ---

    def add_league(self, league: League) -> League:
        self._leagues[league.id] = league
        return league

    def add_week(self, week: Week) -> Week:
        if week.league_id not in self._leagues:
            raise KeyError("league not found")
        self._weeks[week.id] = week
        return week

    def add_section(self, section: Section) -> Section:
        if section.week_id not in self._weeks:
            raise KeyError("week not found")
        self._sections[section.id] = section
        return section

    def add_resource(self, resource: Resource) -> Resource:
        if resource.section_id not in self._sections:
            raise KeyError("section not found")
        self._resources[resource.id] = resource
        return resource

    def clear(self) -> None:
        self._leagues.clear()
        self._weeks.clear()
        self._sections.clear()
        self._resources.clear()

    # --- reads ---

    async def get_league(self, league_id: UUID) -> League | None:
        return self._leagues.get(league_id)

    async def get_week(self, week_id: UUID) -> Week | None:
        return self._weeks.get(week_id)

    async def get_section(self, section_id: UUID) -> Section | None:
        return self._sections.get(section_id)

    async def get_resource(self, resource_id: UUID) -> Resource | None:
        return self._resources.get(resource_id)

    async def list_leagues(self) -> list[League]:
        return sorted(self._leagues.values(), key=lambda lg: lg.name)

    async def weeks_for(self, league_ids: Iterable[UUID]) -> list[Week]:
        wanted = set(league_ids)
        weeks = [w for w in self._weeks.values() if w.league_id in wanted]
        return sorted(weeks, key=lambda w: w.order)

    async def sections_for(self, week_ids: Iterable[UUID]) -> list[Section]:
        wanted = set(week_ids)
        sections = [s for s in self._sections.values() if s.week_id in wanted]
        return sorted(sections, key=lambda s: s.order)

    async def resources_for(self, section_ids: Iterable[UUID]) -> list[Resource]:
        wanted = set(section_ids)
        resources = [r for r in self._resources.values() if r.section_id in wanted]
        return sorted(resources, key=lambda r: r.order)

    async def locate(self, node_id: UUID) -> NodeRef | None:
        if node_id in self._leagues:
            return NodeRef("league", node_id)
        if node_id in self._weeks:
            return NodeRef("week", node_id)
        if node_id in self._sections:
            return NodeRef("section", node_id)
        if node_id in self._resources:
            return NodeRef("resource", node_id)
        return None

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
        if node_id in self._weeks:
            return NodeRef("league", self._weeks[node_id].league_id)
        if node_id in self._sections:
            return NodeRef("week", self._sections[node_id].week_id)
        if node_id in self._resources:
            return NodeRef("section", self._resources[node_id].section_id)
        return None
