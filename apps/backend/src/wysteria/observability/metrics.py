"""Prometheus metrics collection and configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

if TYPE_CHECKING:
    from fastapi import FastAPI
    from prometheus_client.registry import CollectorRegistry

    from wysteria.core.config import PrometheusSettings

OTP_SENT_TOTAL = Counter(
    "otp_sent_total",
    "One-time passcodes handed to a delivery channel",
    ["channel", "status"],
)

OTP_VERIFICATIONS_TOTAL = Counter(
    "otp_verifications_total",
    "One-time passcode verification outcomes",
    ["purpose", "result"],
)

SIGN_INS_TOTAL = Counter(
    "sign_ins_total",
    "Sessions created, by sign-in method",
    ["method"],
)

USER_REGISTRATIONS_TOTAL = Counter(
    "user_registrations_total",
    "Total number of user registrations",
    ["source"],
)


class MetricsService:
    """Service for managing Prometheus metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry: CollectorRegistry | None = registry
        self._instrumentator: Instrumentator | None = None

    def create_instrumentator(self, settings: PrometheusSettings) -> Instrumentator:
        """Create and configure FastAPI instrumentator."""
        return Instrumentator(
            should_group_status_codes=settings.should_group_status_codes,
            should_ignore_untemplated=settings.should_ignore_untemplated,
            should_group_untemplated=settings.should_group_untemplated,
            should_round_latency_decimals=settings.should_round_latency_decimals,
            should_respect_env_var=settings.should_respect_env_var,
            excluded_handlers=settings.excluded_handlers,
            env_var_name="ENABLE_METRICS",
            round_latency_decimals=4,
            registry=self.registry,
        )

    def instrument_app(self, app: FastAPI, settings: PrometheusSettings) -> None:
        """Instrument FastAPI application with metrics."""
        if not settings.enabled:
            return

        self._instrumentator = self.create_instrumentator(settings)
        self._instrumentator.instrument(app)
        self._instrumentator.expose(
            app,
            should_gzip=True,
            endpoint=settings.metrics_path,
            include_in_schema=False,
        )

    def record_otp_sent(self, channel: str, status: str = "success") -> None:
        OTP_SENT_TOTAL.labels(channel=channel, status=status).inc()

    def record_otp_verification(self, purpose: str, result: str) -> None:
        OTP_VERIFICATIONS_TOTAL.labels(purpose=purpose, result=result).inc()

    def record_sign_in(self, method: str) -> None:
        SIGN_INS_TOTAL.labels(method=method).inc()

    def record_user_registration(self, source: str) -> None:
        USER_REGISTRATIONS_TOTAL.labels(source=source).inc()


# Global metrics service instance
metrics_service = MetricsService()
