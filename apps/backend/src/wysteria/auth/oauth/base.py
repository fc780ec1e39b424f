from __future__ import annotations

import datetime as dt
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar
from urllib.parse import urlencode

import httpx
import structlog

from wysteria.auth.enums import OAuthProviderName
from wysteria.auth.exceptions import OAuthProviderError

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class OAuthTokens:
    access_token: str | None
    refresh_token: str | None = None
    id_token: str | None = None
    expires_in: int | None = None
    scope: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> OAuthTokens:
        expires_in = payload.get("expires_in")
        return cls(
            access_token=payload.get("access_token"),
            refresh_token=payload.get("refresh_token"),
            id_token=payload.get("id_token"),
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=payload.get("scope"),
        )

    def access_token_expires_at(self, now: dt.datetime) -> dt.datetime | None:
        if self.expires_in is None:
            return None
        return now + dt.timedelta(seconds=self.expires_in)


@dataclass(slots=True)
class OAuthProfile:
    provider: OAuthProviderName
    account_id: str
    email: str | None
    email_verified: bool
    name: str
    image: str | None = None


class OAuthProvider(ABC):
    """Authorization code flow shared by the supported identity providers."""

    name: ClassVar[OAuthProviderName]
    authorization_endpoint: ClassVar[str]
    token_endpoint: ClassVar[str]
    default_scopes: ClassVar[Sequence[str]]
    uses_pkce: ClassVar[bool] = True

    def __init__(self, client_id: str, client_secret: str) -> None:
        self.client_id = client_id
        self.client_secret = client_secret

    def authorization_params(self) -> dict[str, str]:
        return {}

    def build_authorization_url(
        self,
        *,
        state: str,
        code_challenge: str | None,
        redirect_uri: str,
        scopes: Sequence[str] | None = None,
    ) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(scopes or self.default_scopes),
            "state": state,
        }
        if self.uses_pkce and code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
        params.update(self.authorization_params())
        return f"{self.authorization_endpoint}?{urlencode(params)}"

    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        *,
        code: str,
        code_verifier: str | None,
        redirect_uri: str,
    ) -> OAuthTokens:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": redirect_uri,
        }
        if self.uses_pkce and code_verifier:
            data["code_verifier"] = code_verifier

        try:
            response = await client.post(
                self.token_endpoint,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.warning("oauth_token_exchange_failed", provider=self.name.value)
            raise OAuthProviderError("Token exchange failed") from exc

        if response.status_code >= 400:
            logger.warning(
                "oauth_token_exchange_rejected",
                provider=self.name.value,
                status_code=response.status_code,
            )
            raise OAuthProviderError("Token exchange failed")

        try:
            payload = response.json()
        except ValueError as exc:
            raise OAuthProviderError("Unexpected token response") from exc
        if not isinstance(payload, dict):
            raise OAuthProviderError("Unexpected token response")
        return OAuthTokens.from_payload(payload)

    @abstractmethod
    async def fetch_profile(
        self,
        client: httpx.AsyncClient,
        tokens: OAuthTokens,
        *,
        extra: Mapping[str, Any] | None = None,
    ) -> OAuthProfile:
        """Resolve the provider account behind ``tokens``."""
