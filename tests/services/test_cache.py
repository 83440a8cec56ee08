"""Versioned progress cache keys."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from progress_engine.services import cache
from progress_engine.services.cache import (
    cache_service,
    cache_write,
    cached_read,
    invalidate_learner,
    progress_key,
    versioned_key,
)


def test_versioned_key_defaults_before_any_write() -> None:
    learner_id = uuid4()
    key = asyncio.run(versioned_key(learner_id, "dashboard"))
    assert key == progress_key(learner_id, "0", "dashboard")


def test_invalidation_bumps_version() -> None:
    learner_id = uuid4()

    async def scenario() -> tuple[str | None, str | None]:
        before = await versioned_key(learner_id, "dashboard")
        await invalidate_learner(learner_id)
        return before, await versioned_key(learner_id, "dashboard")

    before, after = asyncio.run(scenario())
    assert before != after
    assert after is not None and after.startswith(f"progress:{learner_id}:")


def test_result_of_overlapping_read_is_never_served() -> None:
    learner_id = uuid4()

    async def scenario() -> str | None:
        key = await versioned_key(learner_id, "dashboard")
        # A write commits while the read is still computing.
        await invalidate_learner(learner_id)
        await cache_write(key, '{"stale": true}', 60)
        return await cached_read(await versioned_key(learner_id, "dashboard"))

    assert asyncio.run(scenario()) is None


def test_invalidation_leaves_other_learners_alone() -> None:
    ada, grace = uuid4(), uuid4()

    async def scenario() -> str | None:
        key = await versioned_key(grace, "dashboard")
        await cache_write(key, "{}", 60)
        await invalidate_learner(ada)
        return await cached_read(await versioned_key(grace, "dashboard"))

    assert asyncio.run(scenario()) == "{}"


class _BrokenCache:
    async def get(self, key: str) -> str | None:
        raise ConnectionError("cache down")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise ConnectionError("cache down")

    async def delete(self, key: str) -> None:
        raise ConnectionError("cache down")

    async def delete_pattern(self, pattern: str) -> None:
        raise ConnectionError("cache down")


def test_cache_outage_bypasses_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cache, "cache_service", _BrokenCache())
    learner_id = uuid4()

    async def scenario() -> tuple[str | None, str | None]:
        key = await versioned_key(learner_id, "dashboard")
        await cache_write(key, "{}", 60)
        await invalidate_learner(learner_id)
        return key, await cached_read(key)

    assert asyncio.run(scenario()) == (None, None)


def test_missing_key_write_is_dropped() -> None:
    asyncio.run(cache_write(None, "{}", 60))
    assert cache_service._store == {}  # type: ignore[union-attr]
