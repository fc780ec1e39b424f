from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any, Protocol

import httpx
import jwt

from wysteria.auth.enums import OAuthProviderName
from wysteria.auth.exceptions import OAuthProviderError
from wysteria.auth.oauth.base import OAuthProfile, OAuthProvider, OAuthTokens
from wysteria.core.config import AppleOAuthSettings

APPLE_ISSUER = "https://appleid.apple.com"
APPLE_JWKS_URL = f"{APPLE_ISSUER}/auth/keys"


class SigningKeyResolver(Protocol):
    def get_signing_key_from_jwt(self, token: str) -> Any:
        ...


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def _display_name(user: Mapping[str, Any] | None) -> str:
    if not user:
        return ""
    name = user.get("name")
    if not isinstance(name, Mapping):
        return name.strip() if isinstance(name, str) else ""
    parts = [name.get("firstName"), name.get("lastName")]
    return " ".join(part for part in parts if part)


class AppleProvider(OAuthProvider):
    """Sign in with Apple.

    Apple posts the authorization result back to the callback
    (``response_mode=form_post``) and only exposes the account through the
    signed ``id_token``. The user's name is sent once, on first consent, as a
    separate ``user`` form field.
    """

    name = OAuthProviderName.APPLE
    authorization_endpoint = f"{APPLE_ISSUER}/auth/authorize"
    token_endpoint = f"{APPLE_ISSUER}/auth/token"
    default_scopes = ("name", "email")
    uses_pkce = False

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        app_bundle_identifier: str | None = None,
        jwks_client: SigningKeyResolver | None = None,
    ) -> None:
        super().__init__(client_id, client_secret)
        self.app_bundle_identifier = app_bundle_identifier
        self._jwks_client: SigningKeyResolver = jwks_client or jwt.PyJWKClient(
            APPLE_JWKS_URL
        )

    @classmethod
    def from_settings(cls, settings: AppleOAuthSettings) -> AppleProvider:
        assert settings.client_id is not None and settings.client_secret is not None
        return cls(
            settings.client_id,
            settings.client_secret.get_secret_value(),
            app_bundle_identifier=settings.app_bundle_identifier,
        )

    @property
    def audiences(self) -> list[str]:
        audiences = [self.client_id]
        if self.app_bundle_identifier:
            audiences.append(self.app_bundle_identifier)
        return audiences

    def authorization_params(self) -> dict[str, str]:
        return {"response_mode": "form_post"}

    def _decode_id_token(self, id_token: str) -> dict[str, Any]:
        signing_key = self._jwks_client.get_signing_key_from_jwt(id_token)
        return jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=self.audiences,
            issuer=APPLE_ISSUER,
        )

    async def verify_id_token(self, id_token: str) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._decode_id_token, id_token)
        except jwt.PyJWTError as exc:
            raise OAuthProviderError("Invalid Apple identity token") from exc

    async def fetch_profile(
        self,
        client: httpx.AsyncClient,
        tokens: OAuthTokens,
        *,
        extra: Mapping[str, Any] | None = None,
    ) -> OAuthProfile:
        if not tokens.id_token:
            raise OAuthProviderError("Apple did not return an identity token")

        claims = await self.verify_id_token(tokens.id_token)
        subject = claims.get("sub")
        if not subject:
            raise OAuthProviderError("Apple identity token is missing a subject")

        user = extra.get("user") if extra else None
        return OAuthProfile(
            provider=self.name,
            account_id=str(subject),
            email=claims.get("email"),
            email_verified=_as_bool(claims.get("email_verified", False)),
            name=_display_name(user if isinstance(user, Mapping) else None),
        )
