"""Tests for observability metrics."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY, CollectorRegistry

from wysteria.core.config import PrometheusSettings
from wysteria.observability import MetricsService, metrics_service


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0


def test_auth_metrics_are_registered() -> None:
    for name in ("otp_sent", "otp_verifications", "sign_ins", "user_registrations"):
        assert name in REGISTRY._names_to_collectors


def test_record_helpers_increment_counters() -> None:
    before_sent = _sample("otp_sent_total", {"channel": "sms", "status": "success"})
    before_sign_in = _sample("sign_ins_total", {"method": "google"})
    before_verify = _sample(
        "otp_verifications_total", {"purpose": "sign-in", "result": "invalid"}
    )

    metrics_service.record_otp_sent("sms")
    metrics_service.record_sign_in("google")
    metrics_service.record_otp_verification("sign-in", "invalid")

    assert _sample("otp_sent_total", {"channel": "sms", "status": "success"}) == (
        before_sent + 1
    )
    assert _sample("sign_ins_total", {"method": "google"}) == before_sign_in + 1
    assert _sample(
        "otp_verifications_total", {"purpose": "sign-in", "result": "invalid"}
    ) == before_verify + 1


@pytest.mark.asyncio()
async def test_sign_in_flow_records_metrics(
    async_client: AsyncClient, signed_in: dict[str, str]
) -> None:
    assert _sample("sign_ins_total", {"method": "email-otp"}) >= 1
    assert _sample("user_registrations_total", {"source": "email-otp"}) >= 1
    assert _sample("otp_sent_total", {"channel": "email", "status": "success"}) >= 1


@pytest.mark.asyncio()
async def test_metrics_endpoint_is_exposed() -> None:
    service = MetricsService(registry=CollectorRegistry())
    app = FastAPI()

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        return {"status": "ok"}

    service.instrument_app(
        app, PrometheusSettings(enabled=True, should_respect_env_var=False)
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        await client.get("/ping")
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text


def test_disabled_metrics_are_not_exposed() -> None:
    app = FastAPI()
    MetricsService(registry=CollectorRegistry()).instrument_app(
        app, PrometheusSettings(enabled=False)
    )
    assert all(getattr(route, "path", None) != "/metrics" for route in app.routes)
