"""Completion recording for sections and resources.

Two kinds of completion fact, with different rules:

- SectionCompletion is one-way.  The first completion sets ``completed``
  and ``completed_at``; later calls may only change the note and the
  revision flag.  A first completion is what triggers badge
  reconciliation, inside the same unit of work.
- ResourceCompletion can be toggled freely so learners can un-mark a
  resource while revising.  It never feeds badge logic.

Every write requires an enrollment in the league that contains the node.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, replace
from uuid import UUID

from progress_engine.core.config import SETTINGS
from progress_engine.core.metrics import SECTION_COMPLETIONS
from progress_engine.models.audit import AuditFact
from progress_engine.models.badge import BadgeGrant
from progress_engine.models.completion import ResourceCompletion, SectionCompletion
from progress_engine.models.hierarchy import Resource, Section
from progress_engine.repos.hierarchy_repo import league_of
from progress_engine.services.achievement_engine import reconcile_league
from progress_engine.services.cache import invalidate_learner
from progress_engine.services.enrollment_ledger import require_enrollment
from progress_engine.services.errors import NodeNotFound, ValidationError
from progress_engine.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SectionResult:
    completion: SectionCompletion
    transitioned: bool  # True only on the incomplete -> complete write
    grant: BadgeGrant | None = None


@dataclass(frozen=True, slots=True)
class RevisionList:
    sections: list[tuple[Section, SectionCompletion]]
    resources: list[tuple[Resource, ResourceCompletion]]


def clean_note(note: str | None) -> str | None:
    """Strip a note and enforce NOTE_MAX_LENGTH.

    None means "leave unchanged"; an empty string clears the note.
    """
    if note is None:
        return None
    note = note.strip()
    if len(note) > SETTINGS.note_max_length:
        raise ValidationError(
            f"note must be at most {SETTINGS.note_max_length} characters"
        )
    return note


def _merge_note(cleaned: str | None, current: str | None) -> str | None:
    if cleaned is None:
        return current
    return cleaned or None


def _validate_time_spent(time_spent: int | None) -> None:
    if time_spent is None:
        return
    if isinstance(time_spent, bool) or not isinstance(time_spent, int) or time_spent < 0:
        raise ValidationError("time_spent must be a non-negative integer")


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


async def _enrolled_league(uow: UnitOfWork, learner_id: UUID, node_id: UUID) -> UUID:
    league_id = await league_of(uow.hierarchy, node_id)
    if league_id is None:
        raise NodeNotFound(f"node {node_id} not found")
    await require_enrollment(uow, learner_id, league_id)
    return league_id


def _invalidate_after_commit(uow: UnitOfWork, learner_id: UUID) -> None:
    uow.after_commit(lambda: invalidate_learner(learner_id))


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


async def complete_section(
    uow: UnitOfWork,
    *,
    learner_id: UUID,
    section_id: UUID,
    note: str | None = None,
    revisit: bool | None = None,
) -> SectionResult:
    if await uow.hierarchy.get_section(section_id) is None:
        raise NodeNotFound(f"section {section_id} not found")
    league_id = await _enrolled_league(uow, learner_id, section_id)
    cleaned = clean_note(note)

    await uow.learners.lock(learner_id)
    existing = await uow.completions.get_section(learner_id, section_id)

    if existing is not None and existing.completed:
        updated = replace(
            existing,
            note=_merge_note(cleaned, existing.note),
            marked_for_revision=(
                existing.marked_for_revision if revisit is None else revisit
            ),
        )
        if updated != existing:
            updated = await uow.completions.save_section(updated)
            _invalidate_after_commit(uow, learner_id)
        SECTION_COMPLETIONS.labels(transition="unchanged").inc()
        logger.debug(
            "Section already complete: learner=%s section=%s", learner_id, section_id
        )
        return SectionResult(completion=updated, transitioned=False)

    now = _now()
    saved = await uow.completions.save_section(
        SectionCompletion(
            learner_id=learner_id,
            section_id=section_id,
            completed=True,
            completed_at=now,
            note=_merge_note(cleaned, existing.note if existing else None),
            marked_for_revision=(
                revisit
                if revisit is not None
                else bool(existing and existing.marked_for_revision)
            ),
        )
    )
    await uow.audit.append(
        AuditFact.new(
            action="SECTION_COMPLETED",
            learner_id=learner_id,
            subject_id=section_id,
            occurred_at=now,
            actor=str(learner_id),
            metadata={"league_id": str(league_id)},
        )
    )
    SECTION_COMPLETIONS.labels(transition="completed").inc()
    logger.info(
        "Section completed: learner=%s section=%s",
        learner_id,
        section_id,
        extra={
            "learner_id": str(learner_id),
            "section_id": str(section_id),
            "league_id": str(league_id),
        },
    )

    grant = await reconcile_league(uow, learner_id, league_id)
    _invalidate_after_commit(uow, learner_id)
    return SectionResult(completion=saved, transitioned=True, grant=grant)


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


async def complete_resource(
    uow: UnitOfWork,
    *,
    learner_id: UUID,
    resource_id: UUID,
    completed: bool = True,
    note: str | None = None,
    revisit: bool | None = None,
    time_spent: int | None = None,
) -> ResourceCompletion:
    """Set the resource flag either way, overwriting flag and timestamp."""
    if await uow.hierarchy.get_resource(resource_id) is None:
        raise NodeNotFound(f"resource {resource_id} not found")
    await _enrolled_league(uow, learner_id, resource_id)
    cleaned = clean_note(note)
    _validate_time_spent(time_spent)

    existing = await uow.completions.get_resource(learner_id, resource_id)
    base = existing or ResourceCompletion(learner_id=learner_id, resource_id=resource_id)
    saved = await uow.completions.save_resource(
        replace(
            base,
            completed=completed,
            completed_at=_now() if completed else None,
            note=_merge_note(cleaned, base.note),
            marked_for_revision=(
                base.marked_for_revision if revisit is None else revisit
            ),
            time_spent=base.time_spent if time_spent is None else time_spent,
        )
    )
    logger.info(
        "Resource %s: learner=%s resource=%s",
        "completed" if completed else "unmarked",
        learner_id,
        resource_id,
        extra={"learner_id": str(learner_id)},
    )
    _invalidate_after_commit(uow, learner_id)
    return saved


async def reset_resource(
    uow: UnitOfWork, *, learner_id: UUID, resource_id: UUID
) -> ResourceCompletion:
    """Forget everything recorded for one resource.  Returns the blank state."""
    if await uow.hierarchy.get_resource(resource_id) is None:
        raise NodeNotFound(f"resource {resource_id} not found")
    await _enrolled_league(uow, learner_id, resource_id)

    if await uow.completions.delete_resource(learner_id, resource_id):
        logger.info("Resource reset: learner=%s resource=%s", learner_id, resource_id)
        _invalidate_after_commit(uow, learner_id)
    return ResourceCompletion(learner_id=learner_id, resource_id=resource_id)


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------


async def update_annotation(
    uow: UnitOfWork,
    *,
    learner_id: UUID,
    node_id: UUID,
    note: str | None = None,
    revisit: bool | None = None,
) -> SectionCompletion | ResourceCompletion:
    """Change note and revision flag only; completion state is untouched."""
    if note is None and revisit is None:
        raise ValidationError("provide note or revisit")
    ref = await uow.hierarchy.locate(node_id)
    if ref is None:
        raise NodeNotFound(f"node {node_id} not found")
    if ref.kind not in ("section", "resource"):
        raise ValidationError("annotations apply to sections and resources only")
    await _enrolled_league(uow, learner_id, node_id)
    cleaned = clean_note(note)

    record: SectionCompletion | ResourceCompletion
    if ref.kind == "section":
        current = await uow.completions.get_section(learner_id, node_id)
        base = current or SectionCompletion(learner_id=learner_id, section_id=node_id)
        record = await uow.completions.save_section(
            replace(
                base,
                note=_merge_note(cleaned, base.note),
                marked_for_revision=(
                    base.marked_for_revision if revisit is None else revisit
                ),
            )
        )
    else:
        current_r = await uow.completions.get_resource(learner_id, node_id)
        base_r = current_r or ResourceCompletion(
            learner_id=learner_id, resource_id=node_id
        )
        record = await uow.completions.save_resource(
            replace(
                base_r,
                note=_merge_note(cleaned, base_r.note),
                marked_for_revision=(
                    base_r.marked_for_revision if revisit is None else revisit
                ),
            )
        )

    logger.info(
        "Annotation updated: learner=%s %s=%s", learner_id, ref.kind, node_id
    )
    _invalidate_after_commit(uow, learner_id)
    return record


async def revision_list(uow: UnitOfWork, learner_id: UUID) -> RevisionList:
    """Every section and resource the learner has flagged for revision."""
    section_rows, resource_rows = await uow.completions.marked_for_revision(learner_id)

    sections = []
    for row in section_rows:
        section = await uow.hierarchy.get_section(row.section_id)
        if section is not None:
            sections.append((section, row))
    resources = []
    for row in resource_rows:
        resource = await uow.hierarchy.get_resource(row.resource_id)
        if resource is not None:
            resources.append((resource, row))

    sections.sort(key=lambda pair: pair[0].order)
    resources.sort(key=lambda pair: pair[0].order)
    return RevisionList(sections=sections, resources=resources)
