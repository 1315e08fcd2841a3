"""Liveness and readiness probes.

  /health  "is the process alive?"  Always 200; ``status`` says whether a
           backing service is degraded.  A failing liveness probe gets the
           container restarted, which is too blunt for a flaky Redis.
  /ready   "can it take traffic?"  503 when the database is configured but
           unreachable, so the load balancer stops routing here until it
           recovers.  Redis is optional (in-memory rate limiting), so it
           never fails readiness.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, Response
from sqlalchemy.exc import SQLAlchemyError

from app.db import engine as db_engine
from app.db.redis import redis_pool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _database_status() -> str:
    if db_engine.engine is None:
        return "not_configured"
    try:
        await db_engine.ping_database()
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Database ping failed: %s", exc)
        return "degraded"
    return "ok"


async def _redis_status() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except (aioredis.RedisError, OSError) as exc:
        logger.warning("Redis ping failed: %s", exc)
        return "degraded"
    return "ok"


@router.get("/health")
async def health() -> dict:
    checks = {
        "database": await _database_status(),
        "redis": await _redis_status(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _database_status() == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)
