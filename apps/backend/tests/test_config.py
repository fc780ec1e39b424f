from __future__ import annotations

import pytest
from pydantic import SecretStr, ValidationError

from wysteria.core.config import (
    AuthSettings,
    DatabaseSettings,
    Environment,
    Settings,
    get_settings,
)


def test_defaults_for_test_environment() -> None:
    settings = Settings()

    assert settings.environment is Environment.TEST
    assert settings.is_testing is True
    assert settings.debug is True
    assert settings.project_name == "Wysteria API"
    assert settings.auth.cookie_name == "wysteria.session_token"
    assert settings.auth.session_expires_in == 60 * 60 * 24 * 7
    assert settings.auth.session_update_age == 60 * 60 * 24
    assert settings.auth.otp_length == 6
    assert settings.auth.otp_expires_in == 300
    assert settings.auth.otp_allowed_attempts == 3


def test_nested_environment_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTH__SESSION_EXPIRES_IN", "7200")
    monkeypatch.setenv("AUTH__SESSION_UPDATE_AGE", "600")
    monkeypatch.setenv("S3__BUCKET", "custom-bucket")

    settings = Settings()

    assert settings.auth.session_expires_in == 7200
    assert settings.auth.session_update_age == 600
    assert settings.s3.bucket == "custom-bucket"
    assert settings.rate_limit.global_requests_per_minute == 1000


def test_provider_credentials_accept_legacy_names(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("GoogleClientId", "google-client")
    monkeypatch.setenv("GoogleClientSecret", "google-secret")
    monkeypatch.setenv("AxiomToken", "xaat-123")
    monkeypatch.setenv("AxiomDataset", "traces")

    settings = Settings()

    assert settings.google.client_id == "google-client"
    assert settings.google.enabled is True
    assert settings.apple.enabled is False
    assert settings.telemetry.enabled is True


def test_aws_region_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AWS__REGION", raising=False)
    monkeypatch.setenv("AWS_REGION", "eu-west-1")

    assert Settings().aws.region == "eu-west-1"


def test_production_forces_secure_cookies(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("AUTH__COOKIE_SECURE", "false")

    settings = Settings()

    assert settings.is_production is True
    assert settings.debug is False
    assert settings.auth.cookie_secure is True


def test_base_url_is_normalized(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BASE_URL", "https://api.wysteria.io/")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings()

    assert settings.base_url == "https://api.wysteria.io"
    assert settings.log_level == "DEBUG"


def test_update_age_cannot_exceed_lifetime() -> None:
    with pytest.raises(ValidationError):
        AuthSettings(session_expires_in=3600, session_update_age=7200)


def test_database_dsn_is_assembled() -> None:
    database = DatabaseSettings(
        host="db", user="wysteria", password=SecretStr("p@ss"), name="auth"
    )
    assert database.dsn == "postgresql+asyncpg://wysteria:p%40ss@db:5432/auth"


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()


def test_local_frontend_is_trusted_in_development(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    assert "http://localhost:8080" in Settings().auth.trusted_origins

    monkeypatch.setenv("ENVIRONMENT", "production")
    assert "http://localhost:8080" not in Settings().auth.trusted_origins
