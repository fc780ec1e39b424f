from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI
from starlette.types import Lifespan

from wysteria.auth.oauth import build_providers
from wysteria.auth.rate_limiter import RateLimiter
from wysteria.auth.service import AuthService
from wysteria.core.config import Settings
from wysteria.core.redis import close_redis, init_redis
from wysteria.db.session import dispose_engine, get_engine
from wysteria.notifications import build_email_sender, build_sms_sender
from wysteria.observability import shutdown_tracing
from wysteria.storage import ObjectStorage

OAUTH_HTTP_TIMEOUT = httpx.Timeout(10.0, connect=5.0)


def create_lifespan(settings: Settings) -> Lifespan[FastAPI]:
    logger = structlog.get_logger(__name__).bind(environment=settings.environment)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("application_startup")
        # Initialise pooled resources so they can be reused across requests.
        get_engine(settings)
        redis = await init_redis(settings)
        app.state.redis = redis
        app.state.rate_limiter = RateLimiter(
            redis,
            send_limit=settings.rate_limit.otp_send_per_window,
            verify_limit=settings.rate_limit.otp_verify_per_window,
            window_seconds=settings.rate_limit.window_seconds,
            enabled=settings.rate_limit.enabled,
        )

        email_sender = build_email_sender(settings)
        sms_sender = build_sms_sender(settings)
        app.state.email_sender = email_sender
        app.state.sms_sender = sms_sender
        app.state.storage = ObjectStorage(settings.s3, settings.aws)

        oauth_client = httpx.AsyncClient(
            timeout=OAUTH_HTTP_TIMEOUT,
            headers={"User-Agent": f"{settings.project_name}/{settings.project_version}"},
        )
        app.state.oauth_http_client = oauth_client

        providers = build_providers(settings)
        app.state.auth_service = AuthService(
            settings.auth,
            base_url=settings.base_url,
            redis=redis,
            email_sender=email_sender,
            sms_sender=sms_sender,
            providers=providers,
        )
        logger.info(
            "auth_configured",
            oauth_providers=sorted(name.value for name in providers),
            email_backend=settings.email.backend,
            sms_backend=settings.sms.backend,
        )

        try:
            yield
        finally:
            app.state.auth_service = None
            app.state.rate_limiter = None
            app.state.storage = None
            await oauth_client.aclose()
            app.state.oauth_http_client = None
            await close_redis()
            app.state.redis = None
            await dispose_engine()
            shutdown_tracing()
            logger.info("application_shutdown")

    return lifespan
