"""Redis client for shared rate-limit buckets.

Set REDIS_URL and every API instance draws submission tokens from the
same buckets.  Leave it unset (local dev, tests) and ``redis_pool`` is
None; the rate limiter then keeps per-process buckets in memory.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

redis_pool: aioredis.Redis | None  # type: ignore[type-arg]
if SETTINGS.redis_url:
    redis_pool = aioredis.from_url(
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Check Redis on startup, close the pool on shutdown.

    An unreachable Redis is logged, not fatal: submissions are still
    served, rate-limit checks just fail until it comes back.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured; rate limiting is per process")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except aioredis.RedisError:
        logger.exception("Redis unreachable on startup")

    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connection pool closed")
