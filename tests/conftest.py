from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from progress_engine.main import app
from progress_engine.models.badge import Badge
from progress_engine.models.hierarchy import League, Resource, Section, Week
from progress_engine.models.learner import Cohort, Learner
from progress_engine.services import enrollment_ledger, token_service
from progress_engine.services.cache import cache_service
from progress_engine.services.task_queue import task_queue
from progress_engine.services.unit_of_work import stores, unit_of_work

# Ensure repo root is on sys.path so `import progress_engine` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_stores() -> None:
    """Fresh in-memory repositories for every test."""
    stores.reset()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    sub: str | UUID = "test-user",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=str(sub), roles=roles)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


ADMIN_ID = "00000000-0000-0000-0000-00000000a001"


@pytest.fixture
def admin_token() -> str:
    """Token with admin role."""
    return mint_token(sub=ADMIN_ID, roles=["admin"])


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------


@dataclass
class World:
    learner: Learner
    cohort: Cohort
    league: League
    weeks: list[Week] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    resources: list[Resource] = field(default_factory=list)
    badge: Badge | None = None


def add_learner(name: str = "Ada", status: str = "active") -> Learner:
    learner = Learner.new(name=name, email=f"{name.lower()}@example.com", status=status)
    asyncio.run(stores.learners.add(learner))
    return learner


def add_cohort(name: str = "Cohort 1", is_active: bool = True) -> Cohort:
    cohort = Cohort.new(name=name, is_active=is_active)
    asyncio.run(stores.cohorts.add(cohort))
    return cohort


def add_league(
    name: str = "Backend League",
    *,
    weeks: int = 2,
    sections_per_week: int = 2,
    resources_per_section: int = 2,
) -> tuple[League, list[Week], list[Section], list[Resource]]:
    """Seed a league tree; returns the league and every node in order."""
    league = stores.hierarchy.add_league(League.new(name=name))
    all_weeks: list[Week] = []
    all_sections: list[Section] = []
    all_resources: list[Resource] = []
    for w in range(1, weeks + 1):
        week = stores.hierarchy.add_week(
            Week.new(league_id=league.id, order=w, name=f"{name} week {w}")
        )
        all_weeks.append(week)
        for s in range(1, sections_per_week + 1):
            section = stores.hierarchy.add_section(
                Section.new(week_id=week.id, order=s, name=f"W{w} section {s}")
            )
            all_sections.append(section)
            for r in range(1, resources_per_section + 1):
                all_resources.append(
                    stores.hierarchy.add_resource(
                        Resource.new(
                            section_id=section.id, order=r, title=f"W{w}S{s} res {r}"
                        )
                    )
                )
    return league, all_weeks, all_sections, all_resources


def add_badge(league: League | None, name: str = "Backend Badge") -> Badge:
    badge = Badge.new(name=name, league_id=league.id if league else None)
    asyncio.run(stores.badges.add(badge))
    return badge


def enroll(learner: Learner, cohort: Cohort, league: League) -> None:
    async def _go() -> None:
        async with unit_of_work() as uow:
            await enrollment_ledger.enroll(
                uow,
                learner_id=learner.id,
                cohort_id=cohort.id,
                league_id=league.id,
            )

    asyncio.run(_go())


def build_world(
    *,
    weeks: int = 2,
    sections_per_week: int = 2,
    resources_per_section: int = 2,
    with_badge: bool = True,
    enrolled: bool = True,
) -> World:
    """One learner, one cohort, one league (default 2 weeks x 2 sections)."""
    learner = add_learner()
    cohort = add_cohort()
    league, week_list, section_list, resource_list = add_league(
        weeks=weeks,
        sections_per_week=sections_per_week,
        resources_per_section=resources_per_section,
    )
    badge = add_badge(league) if with_badge else None
    if enrolled:
        enroll(learner, cohort, league)
    return World(
        learner=learner,
        cohort=cohort,
        league=league,
        weeks=week_list,
        sections=section_list,
        resources=resource_list,
        badge=badge,
    )


@pytest.fixture
def world() -> World:
    return build_world()
