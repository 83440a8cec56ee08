from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class AuditFact:
    """Append-only record of something the engine did."""

    id: UUID
    action: str  # USER_ENROLLED|SECTION_COMPLETED|BADGE_EARNED|...
    learner_id: UUID
    subject_id: UUID
    occurred_at: int
    actor: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def new(
        *,
        action: str,
        learner_id: UUID,
        subject_id: UUID,
        occurred_at: int,
        actor: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditFact:
        return AuditFact(
            id=uuid4(),
            action=action,
            learner_id=learner_id,
            subject_id=subject_id,
            occurred_at=occurred_at,
            actor=actor,
            metadata=dict(metadata or {}),
        )
