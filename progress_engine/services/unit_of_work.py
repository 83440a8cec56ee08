"""Unit of work: every repository a learner action touches, over one transaction.

Usage::

    async with unit_of_work() as uow:
        await uow.completions.save_section(...)
        uow.after_commit(lambda: notify(...))

On a clean exit the PostgreSQL implementation commits; on any exception
it rolls back, so a section completion and the badge grant it triggered
land together or not at all.  Callbacks registered with ``after_commit``
run only once the commit has succeeded.  They are for fire-and-forget side
effects (notifications, cache invalidation): a failing callback is logged
and never undoes or fails the committed action.

Without DATABASE_URL the in-memory implementation is used.  Its stores are
process-wide so state survives between requests; tests reset them through
``stores.reset()``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from progress_engine.db.engine import async_session_factory
from progress_engine.repos.audit_repo import AuditSink, InMemoryAuditSink
from progress_engine.repos.badge_repo import BadgeRepo, InMemoryBadgeRepo
from progress_engine.repos.completion_repo import CompletionRepo, InMemoryCompletionRepo
from progress_engine.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from progress_engine.repos.hierarchy_repo import HierarchyStore, InMemoryHierarchyStore
from progress_engine.repos.learner_repo import (
    CohortRepo,
    InMemoryCohortRepo,
    InMemoryLearnerRepo,
    LearnerRepo,
)
from progress_engine.repos.pg_audit_repo import PgAuditSink
from progress_engine.repos.pg_badge_repo import PgBadgeRepo
from progress_engine.repos.pg_completion_repo import PgCompletionRepo
from progress_engine.repos.pg_enrollment_repo import PgEnrollmentRepo
from progress_engine.repos.pg_hierarchy_repo import PgHierarchyStore
from progress_engine.repos.pg_learner_repo import PgCohortRepo, PgLearnerRepo

logger = logging.getLogger(__name__)

AfterCommit = Callable[[], Awaitable[None]]


class UnitOfWork(Protocol):
    learners: LearnerRepo
    cohorts: CohortRepo
    hierarchy: HierarchyStore
    enrollments: EnrollmentRepo
    completions: CompletionRepo
    badges: BadgeRepo
    audit: AuditSink

    async def __aenter__(self) -> UnitOfWork: ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...
    def after_commit(self, callback: AfterCommit) -> None: ...


async def _run_callbacks(callbacks: list[AfterCommit]) -> None:
    for callback in callbacks:
        try:
            await callback()
        except Exception:
            logger.exception("After-commit callback failed")


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


@dataclass
class InMemoryStores:
    """Process-wide in-memory state shared by every InMemoryUnitOfWork."""

    learners: InMemoryLearnerRepo = field(default_factory=InMemoryLearnerRepo)
    cohorts: InMemoryCohortRepo = field(default_factory=InMemoryCohortRepo)
    hierarchy: InMemoryHierarchyStore = field(default_factory=InMemoryHierarchyStore)
    enrollments: InMemoryEnrollmentRepo = field(default_factory=InMemoryEnrollmentRepo)
    completions: InMemoryCompletionRepo = field(default_factory=InMemoryCompletionRepo)
    badges: InMemoryBadgeRepo = field(default_factory=InMemoryBadgeRepo)
    audit: InMemoryAuditSink = field(default_factory=InMemoryAuditSink)

    def reset(self) -> None:
        self.learners = InMemoryLearnerRepo()
        self.cohorts = InMemoryCohortRepo()
        self.hierarchy = InMemoryHierarchyStore()
        self.enrollments = InMemoryEnrollmentRepo()
        self.completions = InMemoryCompletionRepo()
        self.badges = InMemoryBadgeRepo()
        self.audit = InMemoryAuditSink()


stores = InMemoryStores()


class InMemoryUnitOfWork:
    """No rollback: writes made before an exception stay in the stores."""

    def __init__(self, state: InMemoryStores) -> None:
        self._state = state
        self._callbacks: list[AfterCommit] = []

    async def __aenter__(self) -> InMemoryUnitOfWork:
        self.learners = self._state.learners
        self.cohorts = self._state.cohorts
        self.hierarchy = self._state.hierarchy
        self.enrollments = self._state.enrollments
        self.completions = self._state.completions
        self.badges = self._state.badges
        self.audit = self._state.audit
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await _run_callbacks(self._callbacks)
        self._callbacks.clear()

    def after_commit(self, callback: AfterCommit) -> None:
        self._callbacks.append(callback)


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------


class PgUnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._callbacks: list[AfterCommit] = []

    async def __aenter__(self) -> PgUnitOfWork:
        self._session = self._session_factory()
        self.learners = PgLearnerRepo(self._session)
        self.cohorts = PgCohortRepo(self._session)
        self.hierarchy = PgHierarchyStore(self._session)
        self.enrollments = PgEnrollmentRepo(self._session)
        self.completions = PgCompletionRepo(self._session)
        self.badges = PgBadgeRepo(self._session)
        self.audit = PgAuditSink(self._session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        committed = False
        try:
            if exc_type is None:
                await self._session.commit()
                committed = True
            else:
                await self._session.rollback()
        finally:
            await self._session.close()
        if committed:
            await _run_callbacks(self._callbacks)
        self._callbacks.clear()

    def after_commit(self, callback: AfterCommit) -> None:
        self._callbacks.append(callback)


def unit_of_work() -> UnitOfWork:
    """Return a fresh unit of work for the configured backend."""
    if async_session_factory is not None:
        return PgUnitOfWork(async_session_factory)
    return InMemoryUnitOfWork(stores)
