"""OpenTelemetry trace export over OTLP/HTTP."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

if TYPE_CHECKING:
    from fastapi import FastAPI

    from wysteria.core.config import Settings, TelemetrySettings

logger = structlog.get_logger(__name__)

_TRACER_PROVIDER: TracerProvider | None = None


def build_exporter(settings: TelemetrySettings) -> OTLPSpanExporter:
    headers: dict[str, str] = {}
    if settings.token is not None:
        headers["Authorization"] = f"Bearer {settings.token.get_secret_value()}"
    if settings.dataset:
        headers["X-Axiom-Dataset"] = settings.dataset
    return OTLPSpanExporter(endpoint=settings.endpoint, headers=headers)


def configure_tracing(settings: Settings) -> TracerProvider | None:
    """Install a global tracer provider exporting spans in batches.

    Returns ``None`` when no telemetry credentials are configured.
    """

    global _TRACER_PROVIDER

    if not settings.telemetry.enabled:
        logger.info("tracing_disabled")
        return None

    if _TRACER_PROVIDER is not None:
        return _TRACER_PROVIDER

    resource = Resource.create(
        {
            "service.name": settings.project_name,
            "service.version": settings.project_version,
            "deployment.environment": settings.environment.value,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(build_exporter(settings.telemetry)))
    trace.set_tracer_provider(provider)
    _TRACER_PROVIDER = provider

    logger.info("tracing_configured", endpoint=settings.telemetry.endpoint)
    return provider


def instrument_tracing(app: FastAPI, settings: Settings) -> None:
    """Auto-instrument routes once a tracer provider is active."""

    provider = configure_tracing(settings)
    if provider is None:
        return

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=provider,
        excluded_urls=settings.telemetry.excluded_urls,
    )


def shutdown_tracing() -> None:
    global _TRACER_PROVIDER

    if _TRACER_PROVIDER is None:
        return

    _TRACER_PROVIDER.shutdown()
    _TRACER_PROVIDER = None
