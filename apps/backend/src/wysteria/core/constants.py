"""Global constants for the Wysteria backend."""

from __future__ import annotations

SERVICE_NAME = "wysteria"
BRAND_NAME = "Wysteria"
DEFAULT_TIMEZONE = "UTC"
REQUEST_ID_HEADER = "X-Request-ID"
REQUEST_ID_CTX_KEY = "request_id"
DEFAULT_ENV_FILE = ".env"
SECRETS_DIR = "/run/secrets"
DEV_FRONTEND_ORIGIN = "http://localhost:8080"
AUTH_BASE_PATH = "/api/auth"
API_V1_PREFIX = "/api/v1"
