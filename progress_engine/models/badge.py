from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

# granted_by value for grants created by league reconciliation.
SYSTEM_GRANTOR = "SYSTEM"


@dataclass(frozen=True, slots=True)
class Badge:
    """Badge definition, bound to at most one league."""

    id: UUID
    name: str
    description: str = ""
    image_url: str = ""
    league_id: UUID | None = None

    @staticmethod
    def new(
        *,
        name: str,
        description: str = "",
        image_url: str = "",
        league_id: UUID | None = None,
    ) -> Badge:
        return Badge(
            id=uuid4(),
            name=name,
            description=description,
            image_url=image_url,
            league_id=league_id,
        )


@dataclass(frozen=True, slots=True)
class BadgeGrant:
    """A badge held by a learner.  Unique per (learner_id, badge_id)."""

    id: UUID
    learner_id: UUID
    badge_id: UUID
    granted_at: int
    granted_by: str  # SYSTEM_GRANTOR or the acting user's id
    reason: str | None = None

    @property
    def is_automatic(self) -> bool:
        return self.granted_by == SYSTEM_GRANTOR

    @staticmethod
    def new(
        *,
        learner_id: UUID,
        badge_id: UUID,
        granted_at: int,
        granted_by: str = SYSTEM_GRANTOR,
        reason: str | None = None,
    ) -> BadgeGrant:
        return BadgeGrant(
            id=uuid4(),
            learner_id=learner_id,
            badge_id=badge_id,
            granted_at=granted_at,
            granted_by=granted_by,
            reason=reason,
        )
