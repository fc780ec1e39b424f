"""Tests for Sentry integration."""

from __future__ import annotations

from unittest.mock import Mock, patch

from pydantic import SecretStr

from wysteria.core.config import Settings
from wysteria.observability.sentry import (
    SentryMiddleware,
    _before_breadcrumb,
    _before_send,
    configure_sentry,
    setup_sentry_middleware,
)


@patch("sentry_sdk.init")
def test_configure_sentry_disabled(mock_init: Mock) -> None:
    settings = Settings()
    settings.sentry.enabled = False
    settings.sentry.dsn = SecretStr("https://test@sentry.io/123")

    configure_sentry(settings.sentry)
    mock_init.assert_not_called()


@patch("sentry_sdk.init")
def test_configure_sentry_no_dsn(mock_init: Mock) -> None:
    settings = Settings()
    settings.sentry.enabled = True
    settings.sentry.dsn = None

    configure_sentry(settings.sentry)
    mock_init.assert_not_called()


@patch("sentry_sdk.init")
def test_configure_sentry_enabled(mock_init: Mock) -> None:
    settings = Settings()
    settings.sentry.enabled = True
    settings.sentry.dsn = SecretStr("https://test@sentry.io/123")
    settings.sentry.environment = "test"
    settings.sentry.sample_rate = 0.5
    settings.sentry.enable_tracing = True
    settings.sentry.traces_sample_rate = 0.2

    configure_sentry(settings.sentry)

    mock_init.assert_called_once()
    kwargs = mock_init.call_args.kwargs
    assert kwargs["dsn"] == "https://test@sentry.io/123"
    assert kwargs["environment"] == "test"
    assert kwargs["sample_rate"] == 0.5

    sampler = kwargs["traces_sampler"]
    assert sampler({"transaction_context": {"name": "/api/v1/health"}}) == 0.0
    assert sampler({"transaction_context": {"name": "/api/auth/sign-in/email-otp"}}) == 0.4
    assert sampler({"transaction_context": {"name": "/api/v1/user/me"}}) == 0.2


@patch("sentry_sdk.capture_exception")
def test_capture_exception(mock_capture: Mock) -> None:
    from wysteria.observability import capture_exception

    test_exception = ValueError("Test error")
    capture_exception(test_exception, user_id="test_user", extra_info="test")

    mock_capture.assert_called_once_with(test_exception)


@patch("sentry_sdk.capture_message")
def test_capture_message(mock_capture: Mock) -> None:
    from wysteria.observability import capture_message

    capture_message("Test message", level="warning", user_id="test_user")

    mock_capture.assert_called_once_with("Test message", level="warning")


@patch("sentry_sdk.set_tags")
@patch("sentry_sdk.set_user")
def test_add_sentry_context(mock_set_user: Mock, mock_set_tags: Mock) -> None:
    from wysteria.observability import add_sentry_context

    add_sentry_context(user_id="user-1", flow="email-otp")

    mock_set_user.assert_called_once_with({"id": "user-1"})
    mock_set_tags.assert_called_once_with({"flow": "email-otp"})


def test_before_send_drops_health_checks() -> None:
    event = {"request": {"url": "http://api.wysteria.io/health"}}
    assert _before_send(event, None) is None


def test_before_send_scrubs_auth_payloads_and_credentials() -> None:
    event = {
        "request": {
            "url": "https://api.wysteria.io/api/auth/sign-in/email-otp",
            "data": {"email": "ada@example.com", "otp": "123456"},
            "query_string": "code=abc",
            "headers": {"Authorization": "Bearer secret", "Cookie": "a=b", "Accept": "*/*"},
        }
    }
    scrubbed = _before_send(event, None)
    assert scrubbed is not None
    request = scrubbed["request"]
    assert "data" not in request
    assert "query_string" not in request
    assert request["headers"]["Authorization"] == "[Filtered]"
    assert request["headers"]["Cookie"] == "[Filtered]"
    assert request["headers"]["Accept"] == "*/*"


def test_before_send_keeps_other_payloads() -> None:
    event = {
        "request": {
            "url": "https://api.wysteria.io/api/v1/user/me",
            "data": {"name": "Ada"},
        }
    }
    scrubbed = _before_send(event, None)
    assert scrubbed is not None
    assert scrubbed["request"]["data"] == {"name": "Ada"}


def test_before_breadcrumb_filters_noise() -> None:
    assert (
        _before_breadcrumb(
            {"category": "http", "data": {"url": "http://x/api/v1/health"}}, None
        )
        is None
    )
    assert _before_breadcrumb({"category": "sql", "data": {"duration": 2}}, None) is None
    slow = {"category": "sql", "data": {"duration": 50}}
    assert _before_breadcrumb(slow, None) == slow


def test_setup_sentry_middleware_only_when_enabled() -> None:
    from fastapi import FastAPI

    settings = Settings()
    settings.sentry.enabled = True
    settings.sentry.dsn = None
    app = FastAPI()
    setup_sentry_middleware(app, settings.sentry)
    assert all(item.cls is not SentryMiddleware for item in app.user_middleware)

    settings.sentry.dsn = SecretStr("https://test@sentry.io/123")
    setup_sentry_middleware(app, settings.sentry)
    assert any(item.cls is SentryMiddleware for item in app.user_middleware)
