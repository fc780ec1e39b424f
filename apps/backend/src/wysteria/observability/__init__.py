"""Observability stack for monitoring, tracing and error tracking."""

from .metrics import MetricsService, metrics_service
from .sentry import (
    add_breadcrumb,
    add_sentry_context,
    capture_exception,
    capture_message,
    configure_sentry,
    setup_sentry_middleware,
)
from .tracing import configure_tracing, instrument_tracing, shutdown_tracing

__all__ = [
    "MetricsService",
    "metrics_service",
    "configure_sentry",
    "setup_sentry_middleware",
    "add_sentry_context",
    "capture_exception",
    "capture_message",
    "add_breadcrumb",
    "configure_tracing",
    "instrument_tracing",
    "shutdown_tracing",
]
