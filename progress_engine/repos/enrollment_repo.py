from __future__ import annotations

from typing import Protocol
from uuid import UUID

from progress_engine.models.enrollment import Enrollment
from progress_engine.services.errors import StorageConflict


class EnrollmentRepo(Protocol):
    async def get(
        self, learner_id: UUID, cohort_id: UUID, league_id: UUID
    ) -> Enrollment | None: ...
    async def add(self, enrollment: Enrollment) -> None: ...
    async def is_enrolled_in_league(self, learner_id: UUID, league_id: UUID) -> bool: ...
    async def list_for_learner(self, learner_id: UUID) -> list[Enrollment]: ...
    async def list_page(
        self,
        *,
        offset: int,
        limit: int,
        cohort_id: UUID | None = None,
        league_id: UUID | None = None,
        learner_id: UUID | None = None,
    ) -> list[Enrollment]:
        """Newest first.  None filters match everything."""
        ...

    async def count(
        self,
        *,
        cohort_id: UUID | None = None,
        league_id: UUID | None = None,
        learner_id: UUID | None = None,
    ) -> int: ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[UUID, UUID, UUID], Enrollment] = {}

    async def get(
        self, learner_id: UUID, cohort_id: UUID, league_id: UUID
    ) -> Enrollment | None:
        return self._store.get((learner_id, cohort_id, league_id))

    async def add(self, enrollment: Enrollment) -> None:
        key = (enrollment.learner_id, enrollment.cohort_id, enrollment.league_id)
        if key in self._store:
            raise StorageConflict("enrollment already exists")
        self._store[key] = enrollment

    async def is_enrolled_in_league(self, learner_id: UUID, league_id: UUID) -> bool:
        return any(
            e.learner_id == learner_id and e.league_id == league_id
            for e in self._store.values()
        )

    async def list_for_learner(self, learner_id: UUID) -> list[Enrollment]:
        mine = [e for e in self._store.values() if e.learner_id == learner_id]
        return sorted(mine, key=lambda e: e.enrolled_at, reverse=True)

    def _matching(
        self,
        cohort_id: UUID | None,
        league_id: UUID | None,
        learner_id: UUID | None,
    ) -> list[Enrollment]:
        return [
            e
            for e in self._store.values()
            if (cohort_id is None or e.cohort_id == cohort_id)
            and (league_id is None or e.league_id == league_id)
            and (learner_id is None or e.learner_id == learner_id)
        ]

    async def list_page(
        self,
        *,
        offset: int,
        limit: int,
        cohort_id: UUID | None = None,
        league_id: UUID | None = None,
        learner_id: UUID | None = None,
    ) -> list[Enrollment]:
        rows = self._matching(cohort_id, league_id, learner_id)
        rows.sort(key=lambda e: e.enrolled_at, reverse=True)
        return rows[offset : offset + limit]

    async def count(
        self,
        *,
        cohort_id: UUID | None = None,
        league_id: UUID | None = None,
        learner_id: UUID | None = None,
    ) -> int:
        return len(self._matching(cohort_id, league_id, learner_id))
