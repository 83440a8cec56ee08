"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured, a connection pool backs
the progress read cache and the notification task queue; when it is None
(local dev, tests), both fall back to in-memory implementations and no
Redis server is needed.

Nothing that must survive a restart lives in Redis.  Completion facts and
badge grants are in PostgreSQL; Redis only holds cached dashboard reads
and queued notification tasks.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from progress_engine.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # str, not bytes
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis() -> AsyncGenerator[None, None]:
    """Startup/shutdown hook for Redis, paired with lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured, cache and task queue are in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        logger.exception("Redis connection failed on startup")
        # Start anyway: cached reads miss and notifications are logged
        # as failed, but completion and grant writes do not depend on Redis.
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
