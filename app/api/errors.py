"""Exception handlers: domain errors to HTTP responses.

Every ``LmsError`` becomes ``{"detail": <message>, "code": <code>}`` with
the status the error class declares.  Anything else is a 500; outside prod
its detail is the exception text to speed up debugging.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.config import SETTINGS
from app.core.errors import LmsError

logger = logging.getLogger(__name__)


async def lms_error_handler(request: Request, exc: LmsError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    detail = "Internal server error" if SETTINGS.is_prod else str(exc)
    return JSONResponse(
        status_code=500,
        content={"detail": detail, "code": "INTERNAL_ERROR"},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LmsError, lms_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
