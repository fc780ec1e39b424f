from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import AsyncClient


@pytest.mark.asyncio()
async def test_health_endpoint(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/health")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["version"] == "v1"
    assert "timestamp" in payload


@pytest.mark.asyncio()
async def test_detailed_health_reports_dependencies(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/health/detailed")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["service"] == "Wysteria API"
    assert payload["environment"] == "test"
    assert payload["database"] == {"status": "ok", "error": None}
    assert payload["redis"] == {"status": "ok", "error": None}


@pytest.mark.asyncio()
async def test_detailed_health_degrades_when_redis_fails(
    app: FastAPI, async_client: AsyncClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def broken_ping() -> bool:
        raise ConnectionError("redis unavailable")

    monkeypatch.setattr(app.state.redis, "ping", broken_ping)
    response = await async_client.get("/api/v1/health/detailed")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["redis"]["status"] == "error"
    assert "redis unavailable" in payload["redis"]["error"]


@pytest.mark.asyncio()
async def test_responses_carry_request_id_and_timing(async_client: AsyncClient) -> None:
    response = await async_client.get(
        "/api/v1/health", headers={"X-Request-ID": "req-123"}
    )
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["Server-Timing"].startswith("app;dur=")

    response = await async_client.get("/api/v1/health")
    assert len(response.headers["X-Request-ID"]) == 32
