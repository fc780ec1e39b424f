from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

import httpx
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from wysteria.auth.rate_limiter import RateLimiter
from wysteria.auth.service import AuthService
from wysteria.db.dependencies import get_db_session

if TYPE_CHECKING:
    from wysteria.storage import ObjectStorage


@dataclass(frozen=True)
class CurrentUser:
    """Lightweight representation of the authenticated user."""

    id: uuid.UUID
    email: str
    session_id: uuid.UUID


async def get_db(session: AsyncSession = Depends(get_db_session)) -> AsyncSession:
    return session


def _app_state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{name.replace('_', ' ').capitalize()} is not configured",
        )
    return value


def get_auth_service(request: Request) -> AuthService:
    return cast(AuthService, _app_state(request, "auth_service"))


def get_rate_limiter(request: Request) -> RateLimiter:
    return cast(RateLimiter, _app_state(request, "rate_limiter"))


def get_oauth_client(request: Request) -> httpx.AsyncClient:
    return cast(httpx.AsyncClient, _app_state(request, "oauth_http_client"))


def get_storage(request: Request) -> ObjectStorage:
    return cast("ObjectStorage", _app_state(request, "storage"))


def get_optional_user(request: Request) -> CurrentUser | None:
    current_user_obj = getattr(request.state, "current_user", None)
    if isinstance(current_user_obj, CurrentUser):
        return current_user_obj
    return None


def get_current_user(request: Request) -> CurrentUser:
    current_user = get_optional_user(request)
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return current_user


def get_session_token(request: Request) -> str | None:
    token = getattr(request.state, "session_token", None)
    return token if isinstance(token, str) else None
