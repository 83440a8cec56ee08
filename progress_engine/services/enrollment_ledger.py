"""Enrollment ledger: which learners take part in which (cohort, league).

An enrollment is the gate for every completion write under its league.
Completion rows are not pre-created here; they appear lazily on first
interaction.
"""

from __future__ import annotations

import datetime
import logging
from uuid import UUID

from progress_engine.models.audit import AuditFact
from progress_engine.models.enrollment import Enrollment
from progress_engine.services.cache import invalidate_learner
from progress_engine.services.errors import (
    AlreadyEnrolled,
    CohortNotFound,
    InactiveCohort,
    LearnerNotActive,
    LearnerNotFound,
    NodeNotFound,
    NotEnrolled,
    StorageConflict,
)
from progress_engine.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


async def enroll(
    uow: UnitOfWork,
    *,
    learner_id: UUID,
    cohort_id: UUID,
    league_id: UUID,
    actor_id: UUID | None = None,
) -> Enrollment:
    cohort = await uow.cohorts.get(cohort_id)
    if cohort is None:
        raise CohortNotFound(f"cohort {cohort_id} not found")
    if not cohort.is_active:
        logger.warning("Enrollment rejected: inactive cohort=%s", cohort_id)
        raise InactiveCohort("cannot enroll in an inactive cohort")

    if await uow.hierarchy.get_league(league_id) is None:
        raise NodeNotFound(f"league {league_id} not found")

    learner = await uow.learners.get(learner_id)
    if learner is None:
        raise LearnerNotFound(f"learner {learner_id} not found")
    if not learner.is_active:
        logger.warning(
            "Enrollment rejected: learner=%s status=%s", learner_id, learner.status
        )
        raise LearnerNotActive("learner account is not active")

    if await uow.enrollments.get(learner_id, cohort_id, league_id) is not None:
        raise AlreadyEnrolled("learner is already enrolled in this cohort and league")

    now = int(datetime.datetime.now(datetime.UTC).timestamp())
    enrollment = Enrollment.new(
        learner_id=learner_id,
        cohort_id=cohort_id,
        league_id=league_id,
        enrolled_at=now,
        enrolled_by=actor_id,
    )
    try:
        await uow.enrollments.add(enrollment)
    except StorageConflict:
        # Lost a race with an identical request.
        raise AlreadyEnrolled(
            "learner is already enrolled in this cohort and league"
        ) from None

    await uow.audit.append(
        AuditFact.new(
            action="USER_ENROLLED",
            learner_id=learner_id,
            subject_id=league_id,
            occurred_at=now,
            actor=str(actor_id) if actor_id else None,
            metadata={"cohort_id": str(cohort_id), "league_id": str(league_id)},
        )
    )
    logger.info(
        "Enrollment created: learner=%s cohort=%s league=%s",
        learner_id,
        cohort_id,
        league_id,
        extra={"learner_id": str(learner_id), "league_id": str(league_id)},
    )
    uow.after_commit(lambda: invalidate_learner(learner_id))
    return enrollment


async def require_enrollment(uow: UnitOfWork, learner_id: UUID, league_id: UUID) -> None:
    """Raise NotEnrolled unless the learner holds an enrollment in the league."""
    if not await uow.enrollments.is_enrolled_in_league(learner_id, league_id):
        logger.warning(
            "Rejected: learner=%s not enrolled in league=%s", learner_id, league_id
        )
        raise NotEnrolled("learner is not enrolled in this league")
