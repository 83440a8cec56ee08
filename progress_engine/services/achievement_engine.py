"""Badge awarding.

A league's state for a learner is never stored.  It is recomputed from
the aggregator on every call:

    NOT_STARTED        no section completed
    IN_PROGRESS        some, not all
    COMPLETE_UNBADGED  all sections completed, badge not held
    COMPLETE_BADGED    all sections completed, badge held

``reconcile_league`` moves COMPLETE_UNBADGED to COMPLETE_BADGED.  Two
callers may race to do that for the same learner.  Both can pass the
"no grant yet" check; the unique (learner, badge) constraint then lets
exactly one insert land.  The loser gets StorageConflict, which here,
and only here, means success: someone else already granted the badge.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from progress_engine.core.metrics import BADGE_GRANT_CONFLICTS, BADGE_GRANTS
from progress_engine.models.audit import AuditFact
from progress_engine.models.badge import Badge, BadgeGrant
from progress_engine.services.aggregator import Counts, league_counts
from progress_engine.services.cache import invalidate_learner
from progress_engine.services.errors import (
    AlreadyGranted,
    BadgeNotFound,
    GrantNotFound,
    LearnerNotFound,
    StorageConflict,
)
from progress_engine.services.notifications import dispatcher
from progress_engine.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

LeagueState = Literal[
    "NOT_STARTED", "IN_PROGRESS", "COMPLETE_UNBADGED", "COMPLETE_BADGED"
]

# Size of the "recent awards" list in badge analytics.
RECENT_AWARDS = 10


def derive_state(counts: Counts, badged: bool) -> LeagueState:
    if counts.total > 0 and counts.completed >= counts.total:
        return "COMPLETE_BADGED" if badged else "COMPLETE_UNBADGED"
    if counts.completed > 0:
        return "IN_PROGRESS"
    return "NOT_STARTED"


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


def _after_grant_change(
    uow: UnitOfWork, grant: BadgeGrant, *, notify: bool
) -> None:
    async def _send() -> None:
        await dispatcher.badge_granted(grant)

    uow.after_commit(lambda: invalidate_learner(grant.learner_id))
    if notify:
        uow.after_commit(_send)


async def league_state(
    uow: UnitOfWork, learner_id: UUID, league_id: UUID
) -> LeagueState:
    counts = await league_counts(uow, learner_id, league_id)
    badge = await uow.badges.for_league(league_id)
    badged = bool(badge and await uow.badges.get_grant(learner_id, badge.id))
    return derive_state(counts, badged)


async def reconcile_league(
    uow: UnitOfWork, learner_id: UUID, league_id: UUID
) -> BadgeGrant | None:
    """Grant the league's badge if every section is complete.

    Returns the new grant, or None when nothing was granted (incomplete
    league, no badge bound, already held, or lost the insert race).
    """
    counts = await league_counts(uow, learner_id, league_id)
    if counts.total == 0 or counts.completed < counts.total:
        logger.debug(
            "League incomplete: learner=%s league=%s completed=%d total=%d",
            learner_id,
            league_id,
            counts.completed,
            counts.total,
        )
        return None

    badge = await uow.badges.for_league(league_id)
    if badge is None:
        logger.info(
            "League complete with no badge bound: learner=%s league=%s",
            learner_id,
            league_id,
        )
        return None

    if await uow.badges.get_grant(learner_id, badge.id) is not None:
        return None

    now = _now()
    grant = BadgeGrant.new(
        learner_id=learner_id,
        badge_id=badge.id,
        granted_at=now,
        reason=f"Completed all {counts.total} sections",
    )
    try:
        await uow.badges.add_grant(grant)
    except StorageConflict:
        BADGE_GRANT_CONFLICTS.inc()
        logger.info(
            "Badge grant already made concurrently: learner=%s badge=%s",
            learner_id,
            badge.id,
        )
        return None

    await uow.audit.append(
        AuditFact.new(
            action="BADGE_EARNED",
            learner_id=learner_id,
            subject_id=badge.id,
            occurred_at=now,
            actor=grant.granted_by,
            metadata={"league_id": str(league_id), "sections": counts.total},
        )
    )
    BADGE_GRANTS.labels(source="system").inc()
    logger.info(
        "Badge granted: learner=%s badge=%s league=%s",
        learner_id,
        badge.id,
        league_id,
        extra={
            "learner_id": str(learner_id),
            "badge_id": str(badge.id),
            "league_id": str(league_id),
        },
    )
    _after_grant_change(uow, grant, notify=True)
    return grant


async def manual_grant(
    uow: UnitOfWork,
    *,
    learner_id: UUID,
    badge_id: UUID,
    actor_id: str,
    reason: str | None = None,
) -> BadgeGrant:
    badge = await uow.badges.get(badge_id)
    if badge is None:
        raise BadgeNotFound(f"badge {badge_id} not found")
    if await uow.learners.get(learner_id) is None:
        raise LearnerNotFound(f"learner {learner_id} not found")
    if await uow.badges.get_grant(learner_id, badge_id) is not None:
        raise AlreadyGranted("learner already has this badge")

    now = _now()
    grant = BadgeGrant.new(
        learner_id=learner_id,
        badge_id=badge_id,
        granted_at=now,
        granted_by=actor_id,
        reason=reason,
    )
    try:
        await uow.badges.add_grant(grant)
    except StorageConflict:
        raise AlreadyGranted("learner already has this badge") from None

    await uow.audit.append(
        AuditFact.new(
            action="BADGE_MANUALLY_AWARDED",
            learner_id=learner_id,
            subject_id=badge_id,
            occurred_at=now,
            actor=actor_id,
            metadata={"reason": reason} if reason else {},
        )
    )
    BADGE_GRANTS.labels(source="manual").inc()
    logger.info(
        "Badge manually granted: learner=%s badge=%s by=%s",
        learner_id,
        badge_id,
        actor_id,
        extra={"learner_id": str(learner_id), "badge_id": str(badge_id)},
    )
    _after_grant_change(uow, grant, notify=True)
    return grant


async def revoke(
    uow: UnitOfWork,
    *,
    learner_id: UUID,
    badge_id: UUID,
    actor_id: str,
    reason: str | None = None,
) -> BadgeGrant:
    """Delete a grant.  Reconciliation will not re-grant until it runs again."""
    grant = await uow.badges.get_grant(learner_id, badge_id)
    if grant is None:
        raise GrantNotFound("learner does not have this badge")

    await uow.badges.delete_grant(learner_id, badge_id)
    await uow.audit.append(
        AuditFact.new(
            action="BADGE_REVOKED",
            learner_id=learner_id,
            subject_id=badge_id,
            occurred_at=_now(),
            actor=actor_id,
            metadata={"reason": reason} if reason else {},
        )
    )
    logger.info(
        "Badge revoked: learner=%s badge=%s by=%s",
        learner_id,
        badge_id,
        actor_id,
        extra={"learner_id": str(learner_id), "badge_id": str(badge_id)},
    )
    _after_grant_change(uow, grant, notify=False)
    return grant


async def list_badges(
    uow: UnitOfWork, learner_id: UUID
) -> list[tuple[BadgeGrant, Badge]]:
    """The learner's grants, newest first, with their badge definitions."""
    held = []
    for grant in await uow.badges.grants_for_learner(learner_id):
        badge = await uow.badges.get(grant.badge_id)
        if badge is not None:
            held.append((grant, badge))
    return held


# ---------------------------------------------------------------------------
# Catalogue and analytics
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CatalogueEntry:
    badge: Badge
    grant: BadgeGrant | None  # the learner's own grant, if held
    total_earners: int


@dataclass(frozen=True, slots=True)
class BadgeAnalytics:
    total_badges: int
    total_awarded: int
    unique_earners: int
    average_per_earner: float
    popularity: list[tuple[Badge, int]]
    recent: list[tuple[BadgeGrant, Badge]]


async def all_badges(uow: UnitOfWork, learner_id: UUID) -> list[CatalogueEntry]:
    """Every badge by name, each marked with whether the learner holds it."""
    earners = await uow.badges.grant_counts()
    held = {g.badge_id: g for g in await uow.badges.grants_for_learner(learner_id)}
    return [
        CatalogueEntry(
            badge=badge,
            grant=held.get(badge.id),
            total_earners=earners.get(badge.id, 0),
        )
        for badge in await uow.badges.list_all()
    ]


async def badge_analytics(uow: UnitOfWork) -> BadgeAnalytics:
    badges = await uow.badges.list_all()
    earned = await uow.badges.grant_counts()
    unique_earners = await uow.badges.earner_count()
    total_awarded = sum(earned.values())

    # sorted() is stable, so equally popular badges stay in name order.
    popularity = sorted(
        ((b, earned.get(b.id, 0)) for b in badges), key=lambda p: p[1], reverse=True
    )
    by_id = {b.id: b for b in badges}
    recent = [
        (g, by_id[g.badge_id])
        for g in await uow.badges.recent_grants(RECENT_AWARDS)
        if g.badge_id in by_id
    ]
    return BadgeAnalytics(
        total_badges=len(badges),
        total_awarded=total_awarded,
        unique_earners=unique_earners,
        average_per_earner=(
            round(total_awarded / unique_earners, 2) if unique_earners else 0.0
        ),
        popularity=popularity,
        recent=recent,
    )
