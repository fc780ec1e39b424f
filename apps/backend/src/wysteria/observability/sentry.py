"""Sentry error tracking integration."""

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

import sentry_sdk
from sentry_sdk.integrations import Integration as SentryIntegration
from sentry_sdk.integrations.boto3 import Boto3Integration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

if TYPE_CHECKING:
    from fastapi import FastAPI
    from pydantic import SecretStr

ASGIScope: TypeAlias = dict[str, Any]
ASGIReceive: TypeAlias = Callable[[], Awaitable[dict[str, Any]]]
ASGISend: TypeAlias = Callable[[dict[str, Any]], Awaitable[None]]

# Request bodies on these paths carry passcodes or provider codes.
_SCRUBBED_PATH_PREFIXES = (
    "/api/auth/sign-in",
    "/api/auth/email-otp",
    "/api/auth/phone-number",
    "/api/auth/callback",
    "/api/auth/one-time-token",
)


class SentrySettingsProtocol(Protocol):
    """Protocol defining required Sentry settings fields."""

    enabled: bool
    dsn: SecretStr | None
    environment: str | None
    release: str | None
    server_name: str | None
    sample_rate: float
    max_breadcrumbs: int
    attach_stacktrace: bool
    send_default_pii: bool
    debug: bool
    enable_tracing: bool
    traces_sample_rate: float
    profiles_sample_rate: float | None
    ignore_errors: Sequence[str]


def configure_sentry(settings: SentrySettingsProtocol) -> None:
    """Configure Sentry SDK with provided settings."""
    if not settings.enabled or settings.dsn is None:
        return

    integrations: list[SentryIntegration] = [
        StarletteIntegration(),
        FastApiIntegration(),
        SqlalchemyIntegration(),
        RedisIntegration(),
        HttpxIntegration(),
        Boto3Integration(),
        LoggingIntegration(
            level=logging.INFO,
            event_level=logging.ERROR,
        ),
    ]

    traces_sampler: Callable[[dict[str, Any]], float] | None = None
    if settings.enable_tracing:

        def traces_sampler_context(
            sampling_context: dict[str, Any],
        ) -> float:
            transaction = sampling_context.get("transaction_context", {})
            transaction_name = transaction.get("name", "")

            if "/health" in transaction_name or "/metrics" in transaction_name:
                return 0.0
            if transaction_name.startswith("/api/auth"):
                return min(1.0, settings.traces_sample_rate * 2)
            return settings.traces_sample_rate

        traces_sampler = traces_sampler_context

    sentry_sdk.init(
        dsn=settings.dsn.get_secret_value(),
        environment=(
            settings.environment or os.getenv("ENVIRONMENT", "development")
        ),
        release=settings.release or os.getenv("APP_VERSION", "unknown"),
        server_name=settings.server_name,
        sample_rate=settings.sample_rate,
        max_breadcrumbs=settings.max_breadcrumbs,
        attach_stacktrace=settings.attach_stacktrace,
        send_default_pii=settings.send_default_pii,
        debug=settings.debug,
        traces_sampler=traces_sampler,
        profiles_sample_rate=settings.profiles_sample_rate,
        integrations=integrations,
        before_send=_before_send,
        before_breadcrumb=_before_breadcrumb,
        ignore_errors=list(settings.ignore_errors),
    )


def _before_send(
    event: dict[str, Any],
    hint: dict[str, Any] | None,
) -> dict[str, Any] | None:
    """Filter and scrub events before sending to Sentry."""
    request = event.get("request", {})
    url = request.get("url", "")
    if url.endswith("/health"):
        return None

    path = url.split("://", 1)[-1]
    path = "/" + path.split("/", 1)[-1] if "/" in path else path
    if path.startswith(_SCRUBBED_PATH_PREFIXES):
        request.pop("data", None)
        request.pop("query_string", None)

    headers = request.get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in {"authorization", "cookie"}:
                headers[name] = "[Filtered]"

    return event


def _before_breadcrumb(
    breadcrumb: dict[str, Any],
    hint: dict[str, Any] | None,
) -> dict[str, Any] | None:
    """Drop noisy breadcrumbs."""
    url = breadcrumb.get("data", {}).get("url", "")
    if breadcrumb.get("category") == "http" and "/health" in url:
        return None

    duration = breadcrumb.get("data", {}).get("duration", 0)
    if breadcrumb.get("category") in ["redis", "sql"] and duration < 10:
        return None

    return breadcrumb


def add_sentry_context(
    user_id: str | None = None,
    **additional_context: Any,
) -> None:
    """Attach the authenticated user and tags to the current scope."""
    if user_id:
        sentry_sdk.set_user({"id": user_id})

    if additional_context:
        sentry_sdk.set_tags(additional_context)


def capture_exception(exception: Exception, **extra_context: Any) -> None:
    """Capture exception with additional context."""
    with sentry_sdk.new_scope() as scope:
        for key, value in extra_context.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)


def capture_message(
    message: str,
    level: str = "info",
    **extra_context: Any,
) -> None:
    """Capture message with additional context."""
    with sentry_sdk.new_scope() as scope:
        for key, value in extra_context.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_message(message, level=level)


def add_breadcrumb(
    category: str,
    message: str,
    level: str = "info",
    **data: Any,
) -> None:
    """Add custom breadcrumb."""
    sentry_sdk.add_breadcrumb(
        category=category,
        message=message,
        level=level,
        data=data,
    )


class SentryMiddleware:
    """Tag Sentry events with the request correlation identifier."""

    def __init__(self, app: Callable[..., Awaitable[None]]) -> None:
        self.app = app

    async def __call__(
        self,
        scope: ASGIScope,
        receive: ASGIReceive,
        send: ASGISend,
    ) -> None:
        if scope["type"] == "http":
            for name, value in scope.get("headers", []):
                if name == b"x-request-id":
                    sentry_sdk.set_tag("request_id", value.decode("latin-1"))
                    break

        await self.app(scope, receive, send)


def setup_sentry_middleware(
    app: FastAPI, settings: SentrySettingsProtocol | None = None
) -> None:
    """Set up Sentry middleware for FastAPI app."""
    if settings is not None and (not settings.enabled or settings.dsn is None):
        return

    app.add_middleware(SentryMiddleware)
