from __future__ import annotations

from collections import Counter
from typing import Protocol
from uuid import UUID

from progress_engine.models.badge import Badge, BadgeGrant
from progress_engine.services.errors import StorageConflict


class BadgeRepo(Protocol):
    async def get(self, badge_id: UUID) -> Badge | None: ...
    async def for_league(self, league_id: UUID) -> Badge | None: ...
    async def add(self, badge: Badge) -> None: ...
    async def get_grant(self, learner_id: UUID, badge_id: UUID) -> BadgeGrant | None: ...
    async def add_grant(self, grant: BadgeGrant) -> BadgeGrant:
        """Insert a grant.  Raises StorageConflict if (learner, badge) exists."""
        ...

    async def delete_grant(self, learner_id: UUID, badge_id: UUID) -> bool: ...
    async def grants_for_learner(self, learner_id: UUID) -> list[BadgeGrant]: ...
    async def list_all(self) -> list[Badge]: ...
    async def grant_counts(self) -> dict[UUID, int]:
        """Number of grants per badge id.  Badges never granted are absent."""
        ...

    async def earner_count(self) -> int:
        """Distinct learners holding at least one badge."""
        ...

    async def recent_grants(self, limit: int) -> list[BadgeGrant]: ...


class InMemoryBadgeRepo:
    def __init__(self) -> None:
        self._badges: dict[UUID, Badge] = {}
        self._grants: dict[tuple[UUID, UUID], BadgeGrant] = {}

    async def get(self, badge_id: UUID) -> Badge | None:
        return self._badges.get(badge_id)

    async def for_league(self, league_id: UUID) -> Badge | None:
        for badge in self._badges.values():
            if badge.league_id == league_id:
                return badge
        return None

    async def add(self, badge: Badge) -> None:
        if badge.league_id is not None and await self.for_league(badge.league_id):
            raise StorageConflict("league already has a badge")
        self._badges[badge.id] = badge

    async def get_grant(self, learner_id: UUID, badge_id: UUID) -> BadgeGrant | None:
        return self._grants.get((learner_id, badge_id))

    async def add_grant(self, grant: BadgeGrant) -> BadgeGrant:
        # Check-and-set with no await in between: atomic on the event loop.
        key = (grant.learner_id, grant.badge_id)
        if key in self._grants:
            raise StorageConflict("badge already granted")
        self._grants[key] = grant
        return grant

    async def delete_grant(self, learner_id: UUID, badge_id: UUID) -> bool:
        return self._grants.pop((learner_id, badge_id), None) is not None

    async def grants_for_learner(self, learner_id: UUID) -> list[BadgeGrant]:
        mine = [g for g in self._grants.values() if g.learner_id == learner_id]
        return sorted(mine, key=lambda g: g.granted_at, reverse=True)

    async def list_all(self) -> list[Badge]:
        return sorted(self._badges.values(), key=lambda b: b.name)

    async def grant_counts(self) -> dict[UUID, int]:
        return dict(Counter(g.badge_id for g in self._grants.values()))

    async def earner_count(self) -> int:
        return len({g.learner_id for g in self._grants.values()})

    async def recent_grants(self, limit: int) -> list[BadgeGrant]:
        newest = sorted(self._grants.values(), key=lambda g: g.granted_at, reverse=True)
        return newest[:limit]
