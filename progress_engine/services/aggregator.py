"""Hierarchical progress aggregation.

Read-only: nothing here writes.  Every report is built level by level
with the hierarchy's batch readers, so a scope of any depth costs one
query per level plus one completion lookup per kind, never one query
per node.

What "completed" means at each level:

- resource: total 1, completed = the learner's resource flag.
- section:  total = child resources, completed = completed resources.
            The section's own completion flag is reported separately
            (``NodeProgress.is_completed``); the two signals are
            independent.
- week:     total = sections, completed = sections whose own flag is set.
- league:   total = sections across all weeks, completed = sum of weeks.

A node with no children contributes total 0.  That is logged and
counted, but never aborts the report.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from progress_engine.core.metrics import AGGREGATION_DEGRADED
from progress_engine.models.badge import Badge, BadgeGrant
from progress_engine.models.completion import ResourceCompletion, SectionCompletion
from progress_engine.models.enrollment import Enrollment
from progress_engine.models.hierarchy import League, NodeKind, Resource, Section, Week
from progress_engine.repos.hierarchy_repo import league_of
from progress_engine.services.enrollment_ledger import require_enrollment
from progress_engine.services.errors import NodeNotFound, ValidationError
from progress_engine.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

SCOPES = ("global", "league", "week", "section")

MAX_PAGE_SIZE = 100


def percentage(completed: int, total: int) -> int:
    """Whole-number percentage, .5 rounding up.  0 when total is 0."""
    if total <= 0:
        return 0
    # Integer arithmetic: round(x) in Python rounds half to even.
    return (completed * 200 + total) // (2 * total)


@dataclass(frozen=True, slots=True)
class Counts:
    total: int = 0
    completed: int = 0

    @property
    def percentage(self) -> int:
        return percentage(self.completed, self.total)

    def __add__(self, other: Counts) -> Counts:
        return Counts(self.total + other.total, self.completed + other.completed)


@dataclass(frozen=True, slots=True)
class NodeProgress:
    kind: NodeKind
    id: UUID
    name: str
    order: int
    counts: Counts
    resources: Counts
    is_completed: bool
    record: SectionCompletion | ResourceCompletion | None = None
    children: tuple[NodeProgress, ...] = ()


@dataclass(frozen=True, slots=True)
class ScopeReport:
    scope: str
    scope_id: UUID | None
    counts: Counts
    resources: Counts
    nodes: tuple[NodeProgress, ...]
    totals: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DashboardStats:
    total_enrollments: int
    total_sections: int
    completed_sections: int
    overall_progress: int
    badges_earned: int


@dataclass(frozen=True, slots=True)
class Dashboard:
    enrollments: list[Enrollment]
    badges: list[tuple[BadgeGrant, Badge]]
    leagues: list[NodeProgress]
    stats: DashboardStats


@dataclass(frozen=True, slots=True)
class LeagueProgress:
    league: NodeProgress
    badge: Badge | None
    grant: BadgeGrant | None


@dataclass(frozen=True, slots=True)
class EnrollmentProgress:
    enrollment: Enrollment
    sections: Counts


@dataclass(frozen=True, slots=True)
class EnrollmentPage:
    items: list[EnrollmentProgress]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit)


# ---------------------------------------------------------------------------
# Tree building, one level per pass
# ---------------------------------------------------------------------------


def _degraded(kind: str, node_id: UUID) -> None:
    logger.warning("Aggregation degraded: %s=%s has no children", kind, node_id)
    AGGREGATION_DEGRADED.labels(kind=kind).inc()


def _sum(nodes: Iterable[NodeProgress], attr: str) -> Counts:
    total = Counts()
    for node in nodes:
        total = total + getattr(node, attr)
    return total


async def _section_nodes(
    uow: UnitOfWork, learner_id: UUID, sections: list[Section]
) -> list[NodeProgress]:
    section_ids = [s.id for s in sections]
    resources = await uow.hierarchy.resources_for(section_ids)
    resource_done = await uow.completions.resource_completions(
        learner_id, [r.id for r in resources]
    )
    section_done = await uow.completions.section_completions(learner_id, section_ids)

    by_section: dict[UUID, list[Resource]] = defaultdict(list)
    for resource in resources:
        by_section[resource.section_id].append(resource)

    nodes = []
    for section in sections:
        children = []
        for resource in by_section.get(section.id, []):
            record = resource_done.get(resource.id)
            flag = bool(record and record.completed)
            one = Counts(1, int(flag))
            children.append(
                NodeProgress(
                    kind="resource",
                    id=resource.id,
                    name=resource.title,
                    order=resource.order,
                    counts=one,
                    resources=one,
                    is_completed=flag,
                    record=record,
                )
            )
        if not children:
            _degraded("section", section.id)
        resource_counts = _sum(children, "counts")
        record = section_done.get(section.id)
        nodes.append(
            NodeProgress(
                kind="section",
                id=section.id,
                name=section.name,
                order=section.order,
                counts=resource_counts,
                resources=resource_counts,
                is_completed=bool(record and record.completed),
                record=record,
                children=tuple(children),
            )
        )
    return nodes


async def _week_nodes(
    uow: UnitOfWork, learner_id: UUID, weeks: list[Week]
) -> list[NodeProgress]:
    sections = await uow.hierarchy.sections_for([w.id for w in weeks])
    section_nodes = await _section_nodes(uow, learner_id, sections)

    by_week: dict[UUID, list[NodeProgress]] = defaultdict(list)
    for section, node in zip(sections, section_nodes, strict=True):
        by_week[section.week_id].append(node)

    nodes = []
    for week in weeks:
        children = by_week.get(week.id, [])
        if not children:
            _degraded("week", week.id)
        counts = Counts(len(children), sum(1 for c in children if c.is_completed))
        nodes.append(
            NodeProgress(
                kind="week",
                id=week.id,
                name=week.name,
                order=week.order,
                counts=counts,
                resources=_sum(children, "resources"),
                is_completed=counts.total > 0 and counts.completed == counts.total,
                children=tuple(children),
            )
        )
    return nodes


async def _league_nodes(
    uow: UnitOfWork, learner_id: UUID, leagues: list[League]
) -> list[NodeProgress]:
    weeks = await uow.hierarchy.weeks_for([lg.id for lg in leagues])
    week_nodes = await _week_nodes(uow, learner_id, weeks)

    by_league: dict[UUID, list[NodeProgress]] = defaultdict(list)
    for week, node in zip(weeks, week_nodes, strict=True):
        by_league[week.league_id].append(node)

    nodes = []
    for order, league in enumerate(leagues):
        children = by_league.get(league.id, [])
        if not children:
            _degraded("league", league.id)
        counts = _sum(children, "counts")
        nodes.append(
            NodeProgress(
                kind="league",
                id=league.id,
                name=league.name,
                order=order,
                counts=counts,
                resources=_sum(children, "resources"),
                is_completed=counts.total > 0 and counts.completed == counts.total,
                children=tuple(children),
            )
        )
    return nodes


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


async def league_counts(uow: UnitOfWork, learner_id: UUID, league_id: UUID) -> Counts:
    """Section counts for one league.  NodeNotFound if it does not exist."""
    league = await uow.hierarchy.get_league(league_id)
    if league is None:
        raise NodeNotFound(f"league {league_id} not found")
    (node,) = await _league_nodes(uow, learner_id, [league])
    return node.counts


async def count_for(uow: UnitOfWork, learner_id: UUID, node_id: UUID) -> Counts:
    """Completed vs. total children for any node, by the rules above."""
    ref = await uow.hierarchy.locate(node_id)
    if ref is None:
        raise NodeNotFound(f"node {node_id} not found")
    if ref.kind == "resource":
        done = await uow.completions.resource_completions(learner_id, [node_id])
        record = done.get(node_id)
        return Counts(1, int(bool(record and record.completed)))
    report = await scope_report(uow, learner_id, ref.kind, node_id)
    return report.counts


async def scope_report(
    uow: UnitOfWork, learner_id: UUID, scope: str, scope_id: UUID | None = None
) -> ScopeReport:
    """Counts for "global", one league, one week or one section."""
    if scope not in SCOPES:
        raise ValidationError(f"scope must be one of {', '.join(SCOPES)}")
    if scope != "global" and scope_id is None:
        raise ValidationError(f"scope_id is required for scope={scope}")

    if scope == "global":
        leagues = await uow.hierarchy.list_leagues()
        nodes = await _league_nodes(uow, learner_id, leagues)
        weeks = [w for lg in nodes for w in lg.children]
        sections = [s for w in weeks for s in w.children]
        resources = _sum(nodes, "resources")
        return ScopeReport(
            scope=scope,
            scope_id=None,
            counts=_sum(nodes, "counts"),
            resources=resources,
            nodes=tuple(nodes),
            totals={
                "leagues": len(nodes),
                "weeks": len(weeks),
                "sections": len(sections),
                "resources": resources.total,
            },
        )

    if scope == "league":
        league = await uow.hierarchy.get_league(scope_id)
        if league is None:
            raise NodeNotFound(f"league {scope_id} not found")
        nodes = await _league_nodes(uow, learner_id, [league])
    elif scope == "week":
        week = await uow.hierarchy.get_week(scope_id)
        if week is None:
            raise NodeNotFound(f"week {scope_id} not found")
        nodes = await _week_nodes(uow, learner_id, [week])
    else:
        section = await uow.hierarchy.get_section(scope_id)
        if section is None:
            raise NodeNotFound(f"section {scope_id} not found")
        nodes = await _section_nodes(uow, learner_id, [section])

    (node,) = nodes
    return ScopeReport(
        scope=scope,
        scope_id=scope_id,
        counts=node.counts,
        resources=node.resources,
        nodes=(node,),
    )


async def dashboard(uow: UnitOfWork, learner_id: UUID) -> Dashboard:
    enrollments = await uow.enrollments.list_for_learner(learner_id)

    leagues: list[League] = []
    seen: set[UUID] = set()
    for enrollment in enrollments:
        if enrollment.league_id in seen:
            continue
        seen.add(enrollment.league_id)
        league = await uow.hierarchy.get_league(enrollment.league_id)
        if league is None:
            logger.warning(
                "Enrolled league missing: learner=%s league=%s",
                learner_id,
                enrollment.league_id,
            )
            continue
        leagues.append(league)
    league_nodes = await _league_nodes(uow, learner_id, leagues)

    badges = []
    for grant in await uow.badges.grants_for_learner(learner_id):
        badge = await uow.badges.get(grant.badge_id)
        if badge is not None:
            badges.append((grant, badge))

    sections = _sum(league_nodes, "counts")
    return Dashboard(
        enrollments=enrollments,
        badges=badges,
        leagues=league_nodes,
        stats=DashboardStats(
            total_enrollments=len(enrollments),
            total_sections=sections.total,
            completed_sections=sections.completed,
            overall_progress=sections.percentage,
            badges_earned=len(badges),
        ),
    )


async def league_progress(
    uow: UnitOfWork, learner_id: UUID, league_id: UUID
) -> LeagueProgress:
    """Week/section breakdown of one league, plus its badge if held."""
    league = await uow.hierarchy.get_league(league_id)
    if league is None:
        raise NodeNotFound(f"league {league_id} not found")
    await require_enrollment(uow, learner_id, league_id)

    (node,) = await _league_nodes(uow, learner_id, [league])
    badge = await uow.badges.for_league(league_id)
    grant = await uow.badges.get_grant(learner_id, badge.id) if badge else None
    return LeagueProgress(league=node, badge=badge, grant=grant)


async def section_resources(
    uow: UnitOfWork, learner_id: UUID, section_id: UUID
) -> list[tuple[Resource, ResourceCompletion | None]]:
    """Resources of one section in order, each with the learner's state."""
    if await uow.hierarchy.get_section(section_id) is None:
        raise NodeNotFound(f"section {section_id} not found")
    league_id = await league_of(uow.hierarchy, section_id)
    if league_id is None:
        raise NodeNotFound(f"section {section_id} has no league")
    await require_enrollment(uow, learner_id, league_id)

    resources = await uow.hierarchy.resources_for([section_id])
    done = await uow.completions.resource_completions(
        learner_id, [r.id for r in resources]
    )
    return [(r, done.get(r.id)) for r in resources]


async def list_enrollments(
    uow: UnitOfWork,
    *,
    page: int = 1,
    limit: int = 10,
    cohort_id: UUID | None = None,
    league_id: UUID | None = None,
    learner_id: UUID | None = None,
) -> EnrollmentPage:
    """Staff view: one page of enrollments, newest first, with section counts.

    An enrollment whose league has been removed reports zero sections
    rather than failing the page.
    """
    if page < 1:
        raise ValidationError("page must be at least 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    filters = {"cohort_id": cohort_id, "league_id": league_id, "learner_id": learner_id}
    total = await uow.enrollments.count(**filters)
    rows = await uow.enrollments.list_page(
        offset=(page - 1) * limit, limit=limit, **filters
    )

    items = []
    for enrollment in rows:
        league = await uow.hierarchy.get_league(enrollment.league_id)
        if league is None:
            logger.warning(
                "Enrolled league missing: learner=%s league=%s",
                enrollment.learner_id,
                enrollment.league_id,
            )
            sections = Counts()
        else:
            (node,) = await _league_nodes(uow, enrollment.learner_id, [league])
            sections = node.counts
        items.append(EnrollmentProgress(enrollment=enrollment, sections=sections))
    return EnrollmentPage(items=items, page=page, limit=limit, total=total)
