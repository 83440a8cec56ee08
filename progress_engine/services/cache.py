"""Read-through cache for progress reads.

Counts and dashboard responses are the expensive reads: each walks a
league's whole hierarchy.  They are cached per learner with two
complementary expiry rules:

  1. TTL: every entry expires after PROGRESS_CACHE_TTL seconds, so a
     missed invalidation can only serve stale data for that long.
  2. Explicit invalidation: after any committed write for a learner, the
     learner's version is bumped and every cached key under
     ``progress:<learner_id>:`` is deleted.

Keys embed the learner's version as read when the request started.  A read
that overlaps a write therefore stores its result under the old version,
where no later request looks.

Badge grants are never served from here; the grant path always reads the
database inside its own transaction.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from progress_engine.core.config import SETTINGS
from progress_engine.core.metrics import CACHE_OPERATIONS
from progress_engine.db.redis import redis_pool

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching a glob pattern (e.g. 'progress:<id>:*')."""
        ...


class InMemoryCacheService:
    """In-memory cache for dev and tests.  TTLs are not enforced."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        prefix = pattern.rstrip("*")
        for k in [k for k in self._store if k.startswith(prefix)]:
            del self._store[k]

    def clear(self) -> None:
        self._store.clear()


class RedisCacheService:
    """Redis-backed cache, shared across all API instances."""

    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")

    async def delete_pattern(self, pattern: str) -> None:
        # SCAN, not KEYS: KEYS blocks the server while it walks every key.
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(
                cursor, match=f"{self._PREFIX}{pattern}", count=100
            )
            if keys:
                await self._redis.delete(*keys)
            if cursor == 0:
                break


# ---------------------------------------------------------------------------
# Progress keys
# ---------------------------------------------------------------------------


def progress_key(learner_id: UUID, *parts: object) -> str:
    return ":".join(["progress", str(learner_id), *(str(p) for p in parts)])


def _version_key(learner_id: UUID) -> str:
    return f"progress-version:{learner_id}"


async def versioned_key(learner_id: UUID, *parts: object) -> str | None:
    """Key for one learner's read under the learner's current version.

    Returns None when the version cannot be read; callers then bypass the
    cache for this request.
    """
    try:
        version = await cache_service.get(_version_key(learner_id))
    except Exception:
        logger.warning("Cache version read failed: learner=%s", learner_id, exc_info=True)
        return None
    return progress_key(learner_id, version or "0", *parts)


async def cached_read(key: str | None) -> str | None:
    """Cache get that records hit/miss and treats a cache outage as a miss."""
    if key is None:
        CACHE_OPERATIONS.labels(operation="miss").inc()
        return None
    try:
        value = await cache_service.get(key)
    except Exception:
        logger.warning("Cache read failed: key=%s", key, exc_info=True)
        value = None
    CACHE_OPERATIONS.labels(operation="hit" if value is not None else "miss").inc()
    return value


async def cache_write(key: str | None, value: str, ttl_seconds: int) -> None:
    if key is None:
        return
    try:
        await cache_service.set(key, value, ttl_seconds)
    except Exception:
        logger.warning("Cache write failed: key=%s", key, exc_info=True)


async def invalidate_learner(learner_id: UUID) -> None:
    """Drop every cached progress read for one learner."""
    try:
        # Outlives every entry written under the previous version.
        await cache_service.set(
            _version_key(learner_id), uuid4().hex, 2 * SETTINGS.progress_cache_ttl
        )
        await cache_service.delete_pattern(progress_key(learner_id, "*"))
    except Exception:
        logger.warning(
            "Cache invalidation failed: learner=%s", learner_id, exc_info=True
        )


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
