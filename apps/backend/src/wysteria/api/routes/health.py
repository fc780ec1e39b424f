from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from wysteria.auth.dependencies import get_db
from wysteria.core.config import Settings, get_settings
from wysteria.core.constants import API_V1_PREFIX
from wysteria.observability import add_breadcrumb

router = APIRouter(prefix=f"{API_V1_PREFIX}/health", tags=["System"])
logger = structlog.get_logger(__name__)


class DependencyStatus(BaseModel):
    """Health status for a downstream dependency."""

    status: Literal["ok", "error"]
    error: str | None = None

    model_config = ConfigDict(extra="ignore", validate_assignment=True)


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded"]
    version: Literal["v1"] = "v1"
    timestamp: datetime


class DetailedHealthResponse(HealthResponse):
    """Health payload extended with service metadata and dependency checks."""

    service: str
    release: str
    environment: str
    database: DependencyStatus
    redis: DependencyStatus


def _timestamp() -> datetime:
    return datetime.now(UTC)


@router.get("", summary="Service health check", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Return a lightweight health payload for readiness probes."""

    return HealthResponse(status="healthy", timestamp=_timestamp())


@router.get(
    "/detailed",
    summary="Detailed health check with dependencies",
    response_model=DetailedHealthResponse,
)
async def detailed_health(
    request: Request,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> DetailedHealthResponse:
    add_breadcrumb(
        category="health",
        message="Detailed health check requested",
        level="info",
    )

    try:
        await session.execute(text("SELECT 1"))
        database = DependencyStatus(status="ok")
    except Exception as exc:
        logger.error("database_health_check_failed", error=str(exc))
        database = DependencyStatus(status="error", error=str(exc))

    redis_client = getattr(request.app.state, "redis", None)
    if redis_client is None:
        redis = DependencyStatus(status="error", error="Redis is not configured")
    else:
        try:
            await redis_client.ping()
            redis = DependencyStatus(status="ok")
        except Exception as exc:
            logger.error("redis_health_check_failed", error=str(exc))
            redis = DependencyStatus(status="error", error=str(exc))

    healthy = database.status == "ok" and redis.status == "ok"
    return DetailedHealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=_timestamp(),
        service=settings.project_name,
        release=settings.project_version,
        environment=settings.environment.value,
        database=database,
        redis=redis,
    )
