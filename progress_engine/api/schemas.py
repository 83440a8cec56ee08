"""Response models shared by the progress, enrollment and badge routers."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel

from progress_engine.models.badge import Badge, BadgeGrant
from progress_engine.models.completion import ResourceCompletion, SectionCompletion
from progress_engine.models.enrollment import Enrollment
from progress_engine.services.aggregator import Counts, NodeProgress


class CountsOut(BaseModel):
    total: int
    completed: int
    percentage: int

    @staticmethod
    def of(counts: Counts) -> CountsOut:
        return CountsOut(
            total=counts.total,
            completed=counts.completed,
            percentage=counts.percentage,
        )


class NodeOut(BaseModel):
    kind: str
    id: UUID
    name: str
    order: int
    counts: CountsOut
    resources: CountsOut
    is_completed: bool
    completed_at: int | None = None
    note: str | None = None
    marked_for_revision: bool = False
    children: list[NodeOut] = []

    @staticmethod
    def of(node: NodeProgress, depth: int | None = None) -> NodeOut:
        """Serialize a progress tree.  ``depth`` limits how many levels of
        children are included (None = all, 0 = none)."""
        if depth is None:
            children = [NodeOut.of(c) for c in node.children]
        elif depth > 0:
            children = [NodeOut.of(c, depth - 1) for c in node.children]
        else:
            children = []
        record = node.record
        return NodeOut(
            kind=node.kind,
            id=node.id,
            name=node.name,
            order=node.order,
            counts=CountsOut.of(node.counts),
            resources=CountsOut.of(node.resources),
            is_completed=node.is_completed,
            completed_at=record.completed_at if record else None,
            note=record.note if record else None,
            marked_for_revision=bool(record and record.marked_for_revision),
            children=children,
        )


NodeOut.model_rebuild()


class SectionCompletionOut(BaseModel):
    learner_id: UUID
    section_id: UUID
    completed: bool
    completed_at: int | None
    note: str | None
    marked_for_revision: bool

    @staticmethod
    def of(c: SectionCompletion) -> SectionCompletionOut:
        return SectionCompletionOut(
            learner_id=c.learner_id,
            section_id=c.section_id,
            completed=c.completed,
            completed_at=c.completed_at,
            note=c.note,
            marked_for_revision=c.marked_for_revision,
        )


class ResourceCompletionOut(BaseModel):
    learner_id: UUID
    resource_id: UUID
    completed: bool
    completed_at: int | None
    note: str | None
    marked_for_revision: bool
    time_spent: int | None

    @staticmethod
    def of(c: ResourceCompletion) -> ResourceCompletionOut:
        return ResourceCompletionOut(
            learner_id=c.learner_id,
            resource_id=c.resource_id,
            completed=c.completed,
            completed_at=c.completed_at,
            note=c.note,
            marked_for_revision=c.marked_for_revision,
            time_spent=c.time_spent,
        )


class EnrollmentOut(BaseModel):
    id: UUID
    learner_id: UUID
    cohort_id: UUID
    league_id: UUID
    enrolled_at: int

    @staticmethod
    def of(e: Enrollment) -> EnrollmentOut:
        return EnrollmentOut(
            id=e.id,
            learner_id=e.learner_id,
            cohort_id=e.cohort_id,
            league_id=e.league_id,
            enrolled_at=e.enrolled_at,
        )


class BadgeOut(BaseModel):
    id: UUID
    name: str
    description: str
    image_url: str
    league_id: UUID | None

    @staticmethod
    def of(b: Badge) -> BadgeOut:
        return BadgeOut(
            id=b.id,
            name=b.name,
            description=b.description,
            image_url=b.image_url,
            league_id=b.league_id,
        )


class GrantOut(BaseModel):
    id: UUID
    learner_id: UUID
    badge_id: UUID
    granted_at: int
    granted_by: str
    reason: str | None

    @staticmethod
    def of(g: BadgeGrant) -> GrantOut:
        return GrantOut(
            id=g.id,
            learner_id=g.learner_id,
            badge_id=g.badge_id,
            granted_at=g.granted_at,
            granted_by=g.granted_by,
            reason=g.reason,
        )


class HeldBadgeOut(BaseModel):
    badge: BadgeOut
    grant: GrantOut
