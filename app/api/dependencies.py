"""Shared FastAPI dependencies: caller identity, repositories, media storage."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.db import engine as db_engine
from app.models.principal import Principal
from app.repos.registry import Repos, build_pg_repos, memory_repos
from app.services import media_storage as media_module
from app.services import token_service
from app.services.media_storage import MediaStorage

logger = logging.getLogger(__name__)

# The platform auth service issues tokens; tokenUrl only feeds the docs UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")

STAFF_ROLES = {"instructor", "admin"}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(raw_token: Annotated[str, Depends(oauth2_scheme)]) -> Principal:
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Rejected expired bearer token")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as exc:
        logger.warning("Rejected bearer token: %s", exc)
        raise _unauthorized("Invalid token") from None

    sub = claims["sub"]
    if not str(sub).isdigit():
        logger.warning("Rejected bearer token with non-numeric sub=%r", sub)
        raise _unauthorized("Invalid token")

    return Principal(user_id=int(sub), roles=frozenset(claims.get("roles", [])))


def require_staff(principal: Annotated[Principal, Depends(require_user)]) -> Principal:
    """Authoring and grading routes: instructors and admins only."""
    if not principal.has_any_role(STAFF_ROLES):
        logger.warning(
            "Staff route refused for user_id=%s roles=%s",
            principal.user_id,
            sorted(principal.roles),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return principal


async def get_repos() -> AsyncGenerator[Repos, None]:
    """Repos for one request.

    Pg repos built here share the request's session, so everything a
    handler writes commits (or rolls back) as one transaction.
    """
    if db_engine.async_session_factory is None:
        yield memory_repos
        return

    async for session in db_engine.get_async_session():
        yield build_pg_repos(session)


def get_media_storage() -> MediaStorage:
    return media_module.media_storage


ReposDep = Annotated[Repos, Depends(get_repos)]
MediaStorageDep = Annotated[MediaStorage, Depends(get_media_storage)]
CurrentUser = Annotated[Principal, Depends(require_user)]
StaffUser = Annotated[Principal, Depends(require_staff)]
