"""ASGI entry point: ``uvicorn app.main:app``."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.assignments import router as assignments_router
from app.api.completions import router as completions_router
from app.api.courses import router as courses_router
from app.api.errors import install_error_handlers
from app.api.health import router as health_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.quizzes import router as quizzes_router
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db import engine as db_engine
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware
from app.repos.registry import memory_repos
from app.repos.seed import seed_sample_course
from app.services.media_storage import lifespan_media

setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)

_ROUTERS = (
    metrics_router,
    health_router,
    courses_router,
    completions_router,
    quizzes_router,
    assignments_router,
)


async def _seed_dev_catalog() -> None:
    # In-memory dev runs start with one sample course; Postgres is left alone
    if not SETTINGS.is_dev or db_engine.async_session_factory is not None:
        return
    if await memory_repos.catalog.get_course(1) is None:
        await seed_sample_course(memory_repos)
        logger.info("Seeded sample course into in-memory repositories")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_db(), lifespan_redis(), lifespan_media():
        await _seed_dev_catalog()
        yield


def create_app() -> FastAPI:
    application = FastAPI(
        title="lms-progress-service",
        lifespan=lifespan,
        docs_url="/docs" if SETTINGS.is_dev else None,
        redoc_url="/redoc" if SETTINGS.is_dev else None,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(SETTINGS.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Outermost last: every request has an id before it is timed
    application.add_middleware(MetricsMiddleware)
    application.add_middleware(RequestContextMiddleware)

    install_error_handlers(application)
    for router in _ROUTERS:
        application.include_router(router)
    return application


app = create_app()

logger.info(
    "lms-progress-service ready  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
