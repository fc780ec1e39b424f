from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

import wysteria.auth.models  # noqa: F401 - register auth tables with SQLAlchemy metadata
from wysteria.api.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    ServerTimingMiddleware,
)
from wysteria.api.routes import load_routers
from wysteria.auth.middleware import CurrentUserMiddleware
from wysteria.core.config import Settings, get_settings
from wysteria.core.lifespan import create_lifespan
from wysteria.core.logging import configure_logging
from wysteria.observability import (
    configure_sentry,
    instrument_tracing,
    metrics_service,
    setup_sentry_middleware,
)
from wysteria.security import RateLimitMiddleware

OPENAPI_TAGS = [
    {"name": "Auth", "description": "Passwordless sign-in, OAuth and sessions"},
    {"name": "User", "description": "Profile of the signed-in user"},
    {"name": "System", "description": "Health checks"},
]


def _register_middlewares(app: FastAPI, settings: Settings) -> None:
    # Starlette runs the most recently added middleware first.
    app.add_middleware(CurrentUserMiddleware, settings=settings.auth)
    app.add_middleware(ServerTimingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    if settings.rate_limit.enabled:
        app.add_middleware(
            RateLimitMiddleware,
            global_requests_per_minute=settings.rate_limit.global_requests_per_minute,
            window_seconds=settings.rate_limit.window_seconds,
            exempt_paths=(
                "/api/v1/health",
                settings.prometheus.metrics_path,
            ),
        )

    if settings.is_production:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=settings.cors.production_origin_regex,
            allow_credentials=settings.cors.allow_credentials,
            allow_methods=settings.cors.allow_methods,
            allow_headers=settings.cors.allow_headers,
        )
    else:
        # Credentialed requests cannot use a literal "*"; echo the origin instead.
        wildcard = "*" in settings.cors.allow_origins
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[] if wildcard else settings.cors.allow_origins,
            allow_origin_regex=".*" if wildcard else None,
            allow_credentials=settings.cors.allow_credentials,
            allow_methods=settings.cors.allow_methods,
            allow_headers=settings.cors.allow_headers,
        )


def _register_routers(app: FastAPI) -> None:
    for router in load_routers():
        app.include_router(router)


def create_app() -> FastAPI:
    settings: Settings = get_settings()
    configure_logging(settings)

    # Configure Sentry first to capture all initialization errors
    if settings.sentry.enabled and settings.sentry.dsn:
        configure_sentry(settings.sentry)

    app = FastAPI(
        title=settings.project_name,
        description=settings.project_description,
        version=settings.project_version,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        openapi_tags=OPENAPI_TAGS,
        default_response_class=ORJSONResponse,
        lifespan=create_lifespan(settings),
    )
    app.state.settings = settings

    setup_sentry_middleware(app, settings.sentry)
    metrics_service.instrument_app(app, settings.prometheus)
    instrument_tracing(app, settings)

    _register_middlewares(app, settings)
    _register_routers(app)

    return app
