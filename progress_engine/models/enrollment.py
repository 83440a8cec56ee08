from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A learner's participation in one (cohort, league) pair.

    Created once, never mutated, never deleted by the progress engine.
    """

    id: UUID
    learner_id: UUID
    cohort_id: UUID
    league_id: UUID
    enrolled_at: int
    enrolled_by: UUID | None = None

    @staticmethod
    def new(
        *,
        learner_id: UUID,
        cohort_id: UUID,
        league_id: UUID,
        enrolled_at: int,
        enrolled_by: UUID | None = None,
    ) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            learner_id=learner_id,
            cohort_id=cohort_id,
            league_id=league_id,
            enrolled_at=enrolled_at,
            enrolled_by=enrolled_by,
        )
