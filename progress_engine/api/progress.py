"""Completion writes and progress reads.

Writes run inside one unit of work each; a section completion that
finishes a league reports the new badge grant in the same response.

Counts and dashboard reads go through the read-through cache keyed by
learner and that learner's cache version.  Every committed write for a
learner bumps the version and drops the learner's keys, and
PROGRESS_CACHE_TTL bounds how stale a missed invalidation can be.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from progress_engine.api.dependencies import resolve_learner
from progress_engine.api.schemas import (
    BadgeOut,
    CountsOut,
    EnrollmentOut,
    GrantOut,
    HeldBadgeOut,
    NodeOut,
    ResourceCompletionOut,
    SectionCompletionOut,
)
from progress_engine.core.config import SETTINGS
from progress_engine.models.completion import SectionCompletion
from progress_engine.services import aggregator, completion_recorder
from progress_engine.services.achievement_engine import derive_state
from progress_engine.services.cache import cache_write, cached_read, versioned_key
from progress_engine.services.unit_of_work import unit_of_work

router = APIRouter(prefix="/v1/progress", tags=["progress"])

Learner = Annotated[UUID, Depends(resolve_learner)]


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class CompleteSectionIn(BaseModel):
    note: str | None = None
    revisit: bool | None = None


class CompleteSectionOut(BaseModel):
    completion: SectionCompletionOut
    transitioned: bool
    badge_granted: GrantOut | None = None


class CompleteResourceIn(BaseModel):
    completed: bool = True
    note: str | None = None
    revisit: bool | None = None
    time_spent: int | None = None


class AnnotationIn(BaseModel):
    note: str | None = None
    revisit: bool | None = None


class AnnotationOut(BaseModel):
    kind: str
    node_id: UUID
    completed: bool
    completed_at: int | None
    note: str | None
    marked_for_revision: bool


class CountsReportOut(BaseModel):
    scope: str
    scope_id: UUID | None
    total: int
    completed: int
    percentage: int
    resources: CountsOut
    nodes: list[NodeOut]
    totals: dict[str, int] = {}


class DashboardStatsOut(BaseModel):
    total_enrollments: int
    total_sections: int
    completed_sections: int
    overall_progress: int
    badges_earned: int


class DashboardOut(BaseModel):
    enrollments: list[EnrollmentOut]
    badges: list[HeldBadgeOut]
    leagues: list[NodeOut]
    stats: DashboardStatsOut


class LeagueProgressOut(BaseModel):
    league: NodeOut
    state: str
    badge: BadgeOut | None
    grant: GrantOut | None


class SectionResourceOut(BaseModel):
    id: UUID
    title: str
    type: str
    url: str
    order: int
    completion: ResourceCompletionOut | None


class RevisionItemOut(BaseModel):
    kind: str
    id: UUID
    name: str
    order: int
    completed: bool
    note: str | None


class RevisionsOut(BaseModel):
    sections: list[RevisionItemOut]
    resources: list[RevisionItemOut]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@router.post("/sections/{section_id}/complete", response_model=CompleteSectionOut)
async def complete_section(
    section_id: UUID, body: CompleteSectionIn, learner_id: Learner
) -> CompleteSectionOut:
    async with unit_of_work() as uow:
        result = await completion_recorder.complete_section(
            uow,
            learner_id=learner_id,
            section_id=section_id,
            note=body.note,
            revisit=body.revisit,
        )
    return CompleteSectionOut(
        completion=SectionCompletionOut.of(result.completion),
        transitioned=result.transitioned,
        badge_granted=GrantOut.of(result.grant) if result.grant else None,
    )


@router.post("/resources/{resource_id}/complete", response_model=ResourceCompletionOut)
async def complete_resource(
    resource_id: UUID, body: CompleteResourceIn, learner_id: Learner
) -> ResourceCompletionOut:
    async with unit_of_work() as uow:
        completion = await completion_recorder.complete_resource(
            uow,
            learner_id=learner_id,
            resource_id=resource_id,
            completed=body.completed,
            note=body.note,
            revisit=body.revisit,
            time_spent=body.time_spent,
        )
    return ResourceCompletionOut.of(completion)


@router.delete("/resources/{resource_id}", response_model=ResourceCompletionOut)
async def reset_resource(resource_id: UUID, learner_id: Learner) -> ResourceCompletionOut:
    async with unit_of_work() as uow:
        completion = await completion_recorder.reset_resource(
            uow, learner_id=learner_id, resource_id=resource_id
        )
    return ResourceCompletionOut.of(completion)


@router.put("/nodes/{node_id}/annotation", response_model=AnnotationOut)
async def update_annotation(
    node_id: UUID, body: AnnotationIn, learner_id: Learner
) -> AnnotationOut:
    async with unit_of_work() as uow:
        record = await completion_recorder.update_annotation(
            uow,
            learner_id=learner_id,
            node_id=node_id,
            note=body.note,
            revisit=body.revisit,
        )
    return AnnotationOut(
        kind="section" if isinstance(record, SectionCompletion) else "resource",
        node_id=node_id,
        completed=record.completed,
        completed_at=record.completed_at,
        note=record.note,
        marked_for_revision=record.marked_for_revision,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/counts", response_model=CountsReportOut)
async def counts(
    learner_id: Learner,
    scope: Annotated[str, Query()] = "global",
    scope_id: Annotated[UUID | None, Query()] = None,
) -> CountsReportOut:
    key = await versioned_key(learner_id, "counts", scope, scope_id or "all")
    cached = await cached_read(key)
    if cached is not None:
        return CountsReportOut.model_validate_json(cached)

    async with unit_of_work() as uow:
        report = await aggregator.scope_report(uow, learner_id, scope, scope_id)
    out = CountsReportOut(
        scope=report.scope,
        scope_id=report.scope_id,
        total=report.counts.total,
        completed=report.counts.completed,
        percentage=report.counts.percentage,
        resources=CountsOut.of(report.resources),
        nodes=[NodeOut.of(n) for n in report.nodes],
        totals=report.totals,
    )
    await cache_write(key, out.model_dump_json(), SETTINGS.progress_cache_ttl)
    return out


@router.get("/dashboard", response_model=DashboardOut)
async def dashboard(learner_id: Learner) -> DashboardOut:
    key = await versioned_key(learner_id, "dashboard")
    cached = await cached_read(key)
    if cached is not None:
        return DashboardOut.model_validate_json(cached)

    async with unit_of_work() as uow:
        board = await aggregator.dashboard(uow, learner_id)
    out = DashboardOut(
        enrollments=[EnrollmentOut.of(e) for e in board.enrollments],
        badges=[
            HeldBadgeOut(badge=BadgeOut.of(b), grant=GrantOut.of(g))
            for g, b in board.badges
        ],
        leagues=[NodeOut.of(n, depth=0) for n in board.leagues],
        stats=DashboardStatsOut(
            total_enrollments=board.stats.total_enrollments,
            total_sections=board.stats.total_sections,
            completed_sections=board.stats.completed_sections,
            overall_progress=board.stats.overall_progress,
            badges_earned=board.stats.badges_earned,
        ),
    )
    await cache_write(key, out.model_dump_json(), SETTINGS.progress_cache_ttl)
    return out


@router.get("/leagues/{league_id}", response_model=LeagueProgressOut)
async def league_progress(league_id: UUID, learner_id: Learner) -> LeagueProgressOut:
    async with unit_of_work() as uow:
        progress = await aggregator.league_progress(uow, learner_id, league_id)
    return LeagueProgressOut(
        league=NodeOut.of(progress.league, depth=2),
        state=derive_state(progress.league.counts, progress.grant is not None),
        badge=BadgeOut.of(progress.badge) if progress.badge else None,
        grant=GrantOut.of(progress.grant) if progress.grant else None,
    )


@router.get("/sections/{section_id}/resources", response_model=list[SectionResourceOut])
async def section_resources(
    section_id: UUID, learner_id: Learner
) -> list[SectionResourceOut]:
    async with unit_of_work() as uow:
        pairs = await aggregator.section_resources(uow, learner_id, section_id)
    return [
        SectionResourceOut(
            id=r.id,
            title=r.title,
            type=r.type,
            url=r.url,
            order=r.order,
            completion=ResourceCompletionOut.of(c) if c else None,
        )
        for r, c in pairs
    ]


@router.get("/revisions", response_model=RevisionsOut)
async def revisions(learner_id: Learner) -> RevisionsOut:
    async with unit_of_work() as uow:
        flagged = await completion_recorder.revision_list(uow, learner_id)
    return RevisionsOut(
        sections=[
            RevisionItemOut(
                kind="section",
                id=s.id,
                name=s.name,
                order=s.order,
                completed=c.completed,
                note=c.note,
            )
            for s, c in flagged.sections
        ],
        resources=[
            RevisionItemOut(
                kind="resource",
                id=r.id,
                name=r.title,
                order=r.order,
                completed=c.completed,
                note=c.note,
            )
            for r, c in flagged.resources
        ],
    )
