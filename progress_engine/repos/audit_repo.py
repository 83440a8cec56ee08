from __future__ import annotations

from typing import Protocol
from uuid import UUID

from progress_engine.models.audit import AuditFact


class AuditSink(Protocol):
    async def append(self, fact: AuditFact) -> None: ...
    async def list_for_learner(self, learner_id: UUID) -> list[AuditFact]: ...


class InMemoryAuditSink:
    def __init__(self) -> None:
        self._facts: list[AuditFact] = []

    async def append(self, fact: AuditFact) -> None:
        self._facts.append(fact)

    async def list_for_learner(self, learner_id: UUID) -> list[AuditFact]:
        return [f for f in self._facts if f.learner_id == learner_id]
