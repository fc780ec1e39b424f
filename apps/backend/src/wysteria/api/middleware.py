from __future__ import annotations

import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from wysteria.core.constants import REQUEST_ID_HEADER
from wysteria.core.logging import bind_request_context, clear_request_context

Logger = structlog.BoundLogger


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Propagate ``X-Request-ID`` into the log context and the response."""

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER) -> None:
        super().__init__(app)
        self._header_name = header_name

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(self._header_name) or uuid.uuid4().hex
        bind_request_context(request_id=request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        finally:
            clear_request_context()

        response.headers[self._header_name] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One ``request_completed`` event per request, or ``request_failed``."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self._logger: Logger = structlog.get_logger("wysteria.request")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.perf_counter()
        fields = {
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client is not None else "unknown",
        }

        try:
            response = await call_next(request)
        except Exception:
            self._logger.exception(
                "request_failed",
                duration_ms=round((time.perf_counter() - start) * 1000, 3),
                **fields,
            )
            raise

        self._logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 3),
            **fields,
        )
        return response


class ServerTimingMiddleware(BaseHTTPMiddleware):
    """Expose the handler duration through the ``Server-Timing`` header."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        response.headers.append("Server-Timing", f"app;dur={duration_ms:.1f}")
        return response
