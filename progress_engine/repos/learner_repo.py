from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from progress_engine.models.learner import Cohort, Learner


class LearnerRepo(Protocol):
    async def get(self, learner_id: UUID) -> Learner | None: ...
    async def add(self, learner: Learner) -> None: ...
    async def set_status(self, learner_id: UUID, status: str) -> None: ...
    async def lock(self, learner_id: UUID) -> None:
        """Serialize writes for one learner until the transaction ends."""
        ...


class CohortRepo(Protocol):
    async def get(self, cohort_id: UUID) -> Cohort | None: ...
    async def add(self, cohort: Cohort) -> None: ...


class InMemoryLearnerRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Learner] = {}

    async def get(self, learner_id: UUID) -> Learner | None:
        return self._by_id.get(learner_id)

    async def add(self, learner: Learner) -> None:
        if learner.id in self._by_id:
            raise ValueError("learner already exists")
        self._by_id[learner.id] = learner

    async def set_status(self, learner_id: UUID, status: str) -> None:
        learner = self._by_id.get(learner_id)
        if learner is None:
            raise KeyError("learner not found")
        self._by_id[learner_id] = replace(learner, status=status)

    async def lock(self, learner_id: UUID) -> None:
        # In-memory repo calls never suspend, so actions cannot interleave.
        return None


class InMemoryCohortRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Cohort] = {}

    async def get(self, cohort_id: UUID) -> Cohort | None:
        return self._by_id.get(cohort_id)

    async def add(self, cohort: Cohort) -> None:
        if cohort.id in self._by_id:
            raise ValueError("cohort already exists")
        self._by_id[cohort.id] = cohort
