"""``require_rate_limit``: per-route token buckets as a FastAPI dependency.

Only routes that record attempts or accept uploads declare it; reads,
probes and /metrics are never limited.  The bucket is chosen by the
token's ``sub`` when there is one and by client IP otherwise, so learners
sharing a campus NAT keep separate buckets.
"""

from __future__ import annotations

import logging

import jwt
from fastapi import HTTPException, Request, status

from app.core.metrics import RATE_LIMIT_HITS
from app.db.redis import redis_pool
from app.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    RedisRateLimiter,
)

logger = logging.getLogger(__name__)

rate_limiter: RateLimiter = (
    RedisRateLimiter(redis_pool) if redis_pool is not None else InMemoryRateLimiter()
)


def _bucket_key(request: Request) -> str:
    # The signature is not checked here; require_user does that.  A forged
    # sub only buys the caller a bucket of their own.
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            sub = jwt.decode(token, options={"verify_signature": False}).get("sub")
        except jwt.InvalidTokenError:
            sub = None
        if sub:
            return f"user:{sub}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def _quota_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
    }


def require_rate_limit(config: RateLimitConfig):
    """Build a dependency that spends one token from ``config``'s bucket.

    Allowed requests get quota headers on their response (copied over by
    RequestContextMiddleware); refused ones get a 429 with Retry-After.
    """

    async def _spend(request: Request) -> None:
        key = _bucket_key(request)
        result = await rate_limiter.check(key, config)
        request.state.rate_limit_headers = _quota_headers(result)
        if result.allowed:
            return

        RATE_LIMIT_HITS.labels(key_type=key.partition(":")[0]).inc()
        logger.warning(
            "Rate limit %s exhausted for %s on %s", config.name, key, request.url.path
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers={
                **_quota_headers(result),
                "Retry-After": str(int(result.retry_after) + 1),
            },
        )

    return _spend
