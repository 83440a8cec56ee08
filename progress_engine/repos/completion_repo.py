from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from progress_engine.models.completion import ResourceCompletion, SectionCompletion


class CompletionRepo(Protocol):
    async def get_resource(
        self, learner_id: UUID, resource_id: UUID
    ) -> ResourceCompletion | None: ...
    async def save_resource(self, completion: ResourceCompletion) -> ResourceCompletion: ...
    async def delete_resource(self, learner_id: UUID, resource_id: UUID) -> bool: ...
    async def resource_completions(
        self, learner_id: UUID, resource_ids: Iterable[UUID]
    ) -> dict[UUID, ResourceCompletion]: ...
    async def get_section(
        self, learner_id: UUID, section_id: UUID
    ) -> SectionCompletion | None: ...
    async def save_section(self, completion: SectionCompletion) -> SectionCompletion: ...
    async def section_completions(
        self, learner_id: UUID, section_ids: Iterable[UUID]
    ) -> dict[UUID, SectionCompletion]: ...
    async def marked_for_revision(
        self, learner_id: UUID
    ) -> tuple[list[SectionCompletion], list[ResourceCompletion]]: ...


class InMemoryCompletionRepo:
    def __init__(self) -> None:
        self._resources: dict[tuple[UUID, UUID], ResourceCompletion] = {}
        self._sections: dict[tuple[UUID, UUID], SectionCompletion] = {}

    async def get_resource(
        self, learner_id: UUID, resource_id: UUID
    ) -> ResourceCompletion | None:
        return self._resources.get((learner_id, resource_id))

    async def save_resource(self, completion: ResourceCompletion) -> ResourceCompletion:
        self._resources[(completion.learner_id, completion.resource_id)] = completion
        return completion

    async def delete_resource(self, learner_id: UUID, resource_id: UUID) -> bool:
        return self._resources.pop((learner_id, resource_id), None) is not None

    async def resource_completions(
        self, learner_id: UUID, resource_ids: Iterable[UUID]
    ) -> dict[UUID, ResourceCompletion]:
        found = {}
        for resource_id in resource_ids:
            completion = self._resources.get((learner_id, resource_id))
            if completion is not None:
                found[resource_id] = completion
        return found

    async def get_section(
        self, learner_id: UUID, section_id: UUID
    ) -> SectionCompletion | None:
        return self._sections.get((learner_id, section_id))

    async def save_section(self, completion: SectionCompletion) -> SectionCompletion:
        key = (completion.learner_id, completion.section_id)
        existing = self._sections.get(key)
        if existing is not None and existing.completed:
            # One-way flag: a stored completion survives any overwrite.
            completion = replace(
                completion, completed=True, completed_at=existing.completed_at
            )
        self._sections[key] = completion
        return completion

    async def section_completions(
        self, learner_id: UUID, section_ids: Iterable[UUID]
    ) -> dict[UUID, SectionCompletion]:
        found = {}
        for section_id in section_ids:
            completion = self._sections.get((learner_id, section_id))
            if completion is not None:
                found[section_id] = completion
        return found

    async def marked_for_revision(
        self, learner_id: UUID
    ) -> tuple[list[SectionCompletion], list[ResourceCompletion]]:
        sections = [
            c
            for c in self._sections.values()
            if c.learner_id == learner_id and c.marked_for_revision
        ]
        resources = [
            c
            for c in self._resources.values()
            if c.learner_id == learner_id and c.marked_for_revision
        ]
        return sections, resources
