from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ResourceCompletion:
    """Per-learner state of one resource.  Completion may be toggled."""

    learner_id: UUID
    resource_id: UUID
    completed: bool = False
    completed_at: int | None = None
    note: str | None = None
    marked_for_revision: bool = False
    time_spent: int | None = None  # seconds


@dataclass(frozen=True, slots=True)
class SectionCompletion:
    """Per-learner state of one section.

    ``completed`` is a one-way flag: once True it never returns to False,
    and ``completed_at`` keeps the time of the first completion.
    """

    learner_id: UUID
    section_id: UUID
    completed: bool = False
    completed_at: int | None = None
    note: str | None = None
    marked_for_revision: bool = False
