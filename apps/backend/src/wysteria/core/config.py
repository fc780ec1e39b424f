from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from typing import Literal
from urllib.parse import quote_plus

from pydantic import (
    AliasChoices,
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from wysteria.core.constants import (
    DEFAULT_ENV_FILE,
    DEV_FRONTEND_ORIGIN,
    SECRETS_DIR,
    SERVICE_NAME,
)


class Environment(StrEnum):
    """Deployment environments supported by the service."""

    DEVELOPMENT = "development"
    TEST = "test"
    STAGING = "staging"
    PRODUCTION = "production"


class AsyncPostgresDsn(AnyUrl):
    allowed_schemes = {"postgresql", "postgresql+asyncpg"}
    host_required = True


class DatabaseSettings(BaseModel):
    """Database connectivity configuration."""

    model_config = ConfigDict(extra="ignore")

    url: AsyncPostgresDsn | None = None
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: SecretStr = SecretStr("postgres")
    name: str = SERVICE_NAME
    echo: bool = False

    def _build_dsn(self) -> str:
        if self.url is not None:
            return str(self.url)

        password = quote_plus(self.password.get_secret_value())
        return (
            f"postgresql+asyncpg://{self.user}:{password}"
            f"@{self.host}:{self.port}/{self.name}"
        )

    @computed_field
    @property
    def dsn(self) -> str:
        """Assemble the SQLAlchemy async DSN."""
        return self._build_dsn()


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS__", extra="ignore")

    url: str = "redis://localhost:6379/0"


class CorsSettings(BaseModel):
    """Cross-origin policy for browser clients."""

    model_config = ConfigDict(extra="ignore")

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    production_origin_regex: str = r"^https://([a-z0-9-]+\.)?wysteria\.io$"
    allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"]
    )
    allow_headers: list[str] = Field(
        default_factory=lambda: ["Content-Type", "Authorization"]
    )
    allow_credentials: bool = True


class AuthSettings(BaseModel):
    """Session, cookie and one-time passcode policy."""

    model_config = ConfigDict(extra="ignore")

    trusted_origins: list[str] = Field(
        default_factory=lambda: ["https://wysteria.io", "https://appleid.apple.com"]
    )
    session_expires_in: int = Field(default=60 * 60 * 24 * 7, ge=60)
    session_update_age: int = Field(default=60 * 60 * 24, ge=0)
    cookie_name: str = "wysteria.session_token"
    cookie_secure: bool = True
    cookie_domain: str | None = None
    cookie_path: str = "/"
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"

    otp_length: int = Field(default=6, ge=4, le=10)
    otp_expires_in: int = Field(default=300, ge=30)
    otp_allowed_attempts: int = Field(default=3, ge=1)

    sign_up_on_phone_verification: bool = True
    temp_email_domain: str = "temp.wysteria.io"

    oauth_state_ttl: int = Field(default=600, ge=60)
    one_time_token_ttl: int = Field(default=180, ge=10)

    @model_validator(mode="after")
    def _check_update_age(self) -> AuthSettings:
        if self.session_update_age > self.session_expires_in:
            raise ValueError("session_update_age must not exceed session_expires_in")
        return self


class GoogleOAuthSettings(BaseSettings):
    """Credentials for Google sign-in."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE__",
        secrets_dir=SECRETS_DIR,
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    client_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE__CLIENT_ID", "GoogleClientId"),
    )
    client_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE__CLIENT_SECRET", "GoogleClientSecret"),
    )
    access_type: str = "offline"
    prompt: str = "select_account consent"

    @computed_field
    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)


class AppleOAuthSettings(BaseSettings):
    """Credentials for Sign in with Apple."""

    model_config = SettingsConfigDict(
        env_prefix="APPLE__",
        secrets_dir=SECRETS_DIR,
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    client_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("APPLE__CLIENT_ID", "AppleClientId"),
    )
    client_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("APPLE__CLIENT_SECRET", "AppleClientSecret"),
    )
    app_bundle_identifier: str = "io.wysteria.app"

    @computed_field
    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)


class AWSSettings(BaseSettings):
    """Shared AWS client configuration for SES, SNS and S3."""

    model_config = SettingsConfigDict(
        env_prefix="AWS__",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    region: str = Field(
        default="us-east-1",
        min_length=1,
        validation_alias=AliasChoices("AWS__REGION", "AWS_REGION"),
    )
    endpoint_url: str | None = None
    access_key_id: SecretStr | None = None
    secret_access_key: SecretStr | None = None

    def client_kwargs(self) -> dict[str, str | None]:
        return {
            "region_name": self.region,
            "endpoint_url": self.endpoint_url,
            "aws_access_key_id": (
                self.access_key_id.get_secret_value() if self.access_key_id else None
            ),
            "aws_secret_access_key": (
                self.secret_access_key.get_secret_value()
                if self.secret_access_key
                else None
            ),
        }


class EmailSettings(BaseModel):
    """Outbound email delivery."""

    model_config = ConfigDict(extra="ignore")

    backend: Literal["ses", "console", "memory"] = "ses"
    sender: str = "noreply@wysteria.io"


class SmsSettings(BaseModel):
    """Outbound SMS delivery."""

    model_config = ConfigDict(extra="ignore")

    backend: Literal["sns", "console", "memory"] = "sns"
    sms_type: Literal["Transactional", "Promotional"] = "Transactional"


class S3Settings(BaseModel):
    """Object storage for user uploaded assets."""

    model_config = ConfigDict(extra="ignore")

    bucket: str = Field(default="wysteria-assets", min_length=3)
    public_base_url: str | None = None
    presign_ttl_seconds: int = Field(default=900, ge=60, le=86_400)
    max_avatar_bytes: int = Field(default=5 * 1024 * 1024, ge=1)


class RateLimitSettings(BaseModel):
    """Global per-IP and per-identifier authentication rate limits."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    global_requests_per_minute: int = Field(default=100, ge=1)
    window_seconds: int = Field(default=60, ge=1)
    otp_send_per_window: int = Field(default=3, ge=1)
    otp_verify_per_window: int = Field(default=10, ge=1)


class TelemetrySettings(BaseSettings):
    """OpenTelemetry trace export configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TELEMETRY__",
        secrets_dir=SECRETS_DIR,
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    endpoint: str = "https://api.axiom.co/v1/traces"
    token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("TELEMETRY__TOKEN", "AxiomToken"),
    )
    dataset: str | None = Field(
        default=None,
        validation_alias=AliasChoices("TELEMETRY__DATASET", "AxiomDataset"),
    )
    excluded_urls: str = "api/v1/health,metrics"

    @computed_field
    @property
    def enabled(self) -> bool:
        return self.token is not None and bool(self.dataset)


class PrometheusSettings(BaseSettings):
    """Prometheus metrics configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PROMETHEUS__",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    enabled: bool = True
    metrics_path: str = "/metrics"
    should_group_status_codes: bool = True
    should_ignore_untemplated: bool = True
    should_group_untemplated: bool = True
    should_round_latency_decimals: bool = False
    should_respect_env_var: bool = True
    excluded_handlers: list[str] = Field(
        default_factory=lambda: ["/metrics", "/api/v1/health", "/docs", "/redoc"]
    )


class SentrySettings(BaseSettings):
    """Sentry error tracking configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SENTRY__",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    enabled: bool = True
    dsn: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "SENTRY_DSN",
            "sentry__dsn",
        ),
    )
    environment: str | None = None
    release: str | None = None
    server_name: str | None = None
    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    max_breadcrumbs: int = Field(default=100, ge=0, le=1000)
    attach_stacktrace: bool = True
    send_default_pii: bool = False
    debug: bool = False
    enable_tracing: bool = True
    traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    profiles_sample_rate: float | None = Field(default=None, ge=0.0, le=1.0)
    ignore_errors: list[str] = Field(default_factory=list)


class Settings(BaseSettings):
    """Application settings loaded from the environment or secret stores."""

    model_config = SettingsConfigDict(
        env_file=DEFAULT_ENV_FILE,
        env_nested_delimiter="__",
        secrets_dir=SECRETS_DIR,
        extra="ignore",
        validate_default=True,
        case_sensitive=False,
    )

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"

    project_name: str = "Wysteria API"
    project_description: str = (
        "A detailed breakdown of the Wysteria API with passwordless authentication"
    )
    project_version: str = "0.1.0"
    docs_url: str | None = "/docs"
    redoc_url: str | None = "/redoc"
    openapi_url: str = "/openapi.json"

    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65_535)
    workers: int | None = Field(default=None, ge=1)
    base_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("BASE_URL", "base_url", "API_BASE_URL"),
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    cors: CorsSettings = Field(default_factory=CorsSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    google: GoogleOAuthSettings = Field(default_factory=GoogleOAuthSettings)
    apple: AppleOAuthSettings = Field(default_factory=AppleOAuthSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    sms: SmsSettings = Field(default_factory=SmsSettings)
    s3: S3Settings = Field(default_factory=S3Settings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    prometheus: PrometheusSettings = Field(default_factory=PrometheusSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @model_validator(mode="after")
    def _normalize(self) -> Settings:
        self.log_level = self.log_level.upper()
        self.base_url = self.base_url.rstrip("/")

        if self.environment in {Environment.DEVELOPMENT, Environment.TEST}:
            self.debug = True
            if DEV_FRONTEND_ORIGIN not in self.auth.trusted_origins:
                self.auth.trusted_origins.append(DEV_FRONTEND_ORIGIN)

        if self.environment is Environment.PRODUCTION:
            self.auth.cookie_secure = True

        return self

    @computed_field
    @property
    def is_development(self) -> bool:
        return self.environment is Environment.DEVELOPMENT

    @computed_field
    @property
    def is_testing(self) -> bool:
        return self.environment is Environment.TEST

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment is Environment.PRODUCTION


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached instance of the application settings."""

    return Settings()
