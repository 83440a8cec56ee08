from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Learner:
    """Identity of a person progressing.  Owned by account management."""

    id: UUID
    name: str
    email: str
    status: str = "active"  # active|pending|suspended

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @staticmethod
    def new(*, name: str, email: str, status: str = "active") -> Learner:
        return Learner(id=uuid4(), name=name, email=email, status=status)


@dataclass(frozen=True, slots=True)
class Cohort:
    id: UUID
    name: str
    is_active: bool = True

    @staticmethod
    def new(*, name: str, is_active: bool = True) -> Cohort:
        return Cohort(id=uuid4(), name=name, is_active=is_active)
