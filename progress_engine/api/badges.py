"""Badge endpoints.

Any learner reads the catalogue and their own badges.  Grant management
and analytics are staff-only.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel

from progress_engine.api.dependencies import require_staff, resolve_learner
from progress_engine.api.schemas import BadgeOut, GrantOut, HeldBadgeOut
from progress_engine.models.principal import Principal
from progress_engine.services import achievement_engine
from progress_engine.services.errors import LearnerNotFound, ValidationError
from progress_engine.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/badges", tags=["badges"])


class ManualGrantIn(BaseModel):
    learner_id: UUID | None = None
    reason: str | None = None


class ReconcileIn(BaseModel):
    learner_id: UUID
    league_id: UUID


class ReconcileOut(BaseModel):
    state: str
    grant: GrantOut | None


class CatalogueBadgeOut(BaseModel):
    badge: BadgeOut
    earned: bool
    earned_at: int | None = None
    total_earners: int


class CatalogueOut(BaseModel):
    badges: list[CatalogueBadgeOut]
    total: int
    earned_count: int


class BadgeOverviewOut(BaseModel):
    total_badges: int
    total_awarded: int
    unique_earners: int
    average_badges_per_earner: float


class BadgePopularityOut(BaseModel):
    badge: BadgeOut
    times_earned: int


class BadgeAnalyticsOut(BaseModel):
    overview: BadgeOverviewOut
    popularity: list[BadgePopularityOut]
    recent_awards: list[HeldBadgeOut]


@router.get("", response_model=CatalogueOut)
async def catalogue(
    learner_id: Annotated[UUID, Depends(resolve_learner)],
) -> CatalogueOut:
    async with unit_of_work() as uow:
        entries = await achievement_engine.all_badges(uow, learner_id)
    badges = [
        CatalogueBadgeOut(
            badge=BadgeOut.of(e.badge),
            earned=e.grant is not None,
            earned_at=e.grant.granted_at if e.grant else None,
            total_earners=e.total_earners,
        )
        for e in entries
    ]
    return CatalogueOut(
        badges=badges,
        total=len(badges),
        earned_count=sum(b.earned for b in badges),
    )


@router.get("/analytics", response_model=BadgeAnalyticsOut)
async def analytics(
    _principal: Annotated[Principal, Depends(require_staff)],
) -> BadgeAnalyticsOut:
    async with unit_of_work() as uow:
        stats = await achievement_engine.badge_analytics(uow)
    return BadgeAnalyticsOut(
        overview=BadgeOverviewOut(
            total_badges=stats.total_badges,
            total_awarded=stats.total_awarded,
            unique_earners=stats.unique_earners,
            average_badges_per_earner=stats.average_per_earner,
        ),
        popularity=[
            BadgePopularityOut(badge=BadgeOut.of(b), times_earned=n)
            for b, n in stats.popularity
        ],
        recent_awards=[
            HeldBadgeOut(badge=BadgeOut.of(b), grant=GrantOut.of(g))
            for g, b in stats.recent
        ],
    )


@router.get("/mine", response_model=list[HeldBadgeOut])
async def my_badges(
    learner_id: Annotated[UUID, Depends(resolve_learner)],
) -> list[HeldBadgeOut]:
    async with unit_of_work() as uow:
        held = await achievement_engine.list_badges(uow, learner_id)
    return [HeldBadgeOut(badge=BadgeOut.of(b), grant=GrantOut.of(g)) for g, b in held]


@router.post(
    "/{badge_id}/grant", response_model=GrantOut, status_code=status.HTTP_201_CREATED
)
async def manual_grant(
    badge_id: UUID,
    body: ManualGrantIn,
    principal: Annotated[Principal, Depends(require_staff)],
) -> GrantOut:
    if body.learner_id is None:
        raise ValidationError("learner_id is required")
    async with unit_of_work() as uow:
        grant = await achievement_engine.manual_grant(
            uow,
            learner_id=body.learner_id,
            badge_id=badge_id,
            actor_id=principal.user_id,
            reason=body.reason,
        )
    return GrantOut.of(grant)


@router.delete("/{badge_id}/grant", status_code=status.HTTP_204_NO_CONTENT)
async def revoke(
    badge_id: UUID,
    principal: Annotated[Principal, Depends(require_staff)],
    learner_id: Annotated[UUID | None, Query()] = None,
    reason: Annotated[str | None, Query()] = None,
) -> Response:
    if learner_id is None:
        raise ValidationError("learner_id is required")
    async with unit_of_work() as uow:
        await achievement_engine.revoke(
            uow,
            learner_id=learner_id,
            badge_id=badge_id,
            actor_id=principal.user_id,
            reason=reason,
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/reconcile", response_model=ReconcileOut)
async def reconcile(
    body: ReconcileIn,
    principal: Annotated[Principal, Depends(require_staff)],
) -> ReconcileOut:
    """Re-run league reconciliation, e.g. after a revoke or a lost commit."""
    async with unit_of_work() as uow:
        if await uow.learners.get(body.learner_id) is None:
            raise LearnerNotFound(f"learner {body.learner_id} not found")
        grant = await achievement_engine.reconcile_league(
            uow, body.learner_id, body.league_id
        )
        state = await achievement_engine.league_state(
            uow, body.learner_id, body.league_id
        )
    logger.info(
        "Reconcile requested by=%s learner=%s league=%s state=%s",
        principal.user_id,
        body.learner_id,
        body.league_id,
        state,
    )
    return ReconcileOut(state=state, grant=GrantOut.of(grant) if grant else None)
