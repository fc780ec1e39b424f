from __future__ import annotations

import structlog
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from wysteria.auth.cookies import set_session_cookie
from wysteria.auth.dependencies import CurrentUser
from wysteria.auth.service import AuthService, ResolvedSession
from wysteria.core.config import AuthSettings
from wysteria.core.logging import bind_context
from wysteria.db.session import get_session_factory
from wysteria.observability import add_sentry_context

logger = structlog.get_logger(__name__)


class CurrentUserMiddleware(BaseHTTPMiddleware):
    """Resolve the session token on every request.

    Populates ``request.state.current_user`` and
    ``request.state.current_session`` when a live session is presented. When
    the lookup slides the session expiry and the token came from the cookie,
    the cookie is re-issued with a fresh max-age.
    """

    def __init__(self, app: ASGIApp, *, settings: AuthSettings) -> None:
        super().__init__(app)
        self._settings = settings

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request.state.current_user = None
        request.state.current_session = None
        request.state.session_token = None

        token, from_cookie = self._extract_token(request)
        resolved: ResolvedSession | None = None
        auth_service = getattr(request.app.state, "auth_service", None)

        if token is not None and isinstance(auth_service, AuthService):
            resolved = await self._resolve(auth_service, token)
            if resolved is not None:
                request.state.current_user = CurrentUser(
                    id=resolved.user.id,
                    email=resolved.user.email,
                    session_id=resolved.session.id,
                )
                request.state.current_session = resolved.session
                request.state.session_token = token
                bind_context(user_id=str(resolved.user.id))
                add_sentry_context(user_id=str(resolved.user.id))

        response = await call_next(request)

        if (
            resolved is not None
            and resolved.refreshed
            and from_cookie
            and self._settings.cookie_name not in response.headers.get("set-cookie", "")
        ):
            set_session_cookie(response, token, self._settings)
        return response

    async def _resolve(
        self, auth_service: AuthService, token: str
    ) -> ResolvedSession | None:
        session_factory = get_session_factory()
        try:
            async with session_factory() as session:
                return await auth_service.resolve_session(session, token)
        except SQLAlchemyError:
            logger.exception("session_lookup_failed")
            return None

    def _extract_token(self, request: Request) -> tuple[str | None, bool]:
        authorization = request.headers.get("Authorization")
        if authorization and authorization.lower().startswith("bearer "):
            return authorization.split(" ", 1)[1].strip() or None, False

        cookie_token = request.cookies.get(self._settings.cookie_name)
        if cookie_token:
            return cookie_token, True
        return None, False
