from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from wysteria.auth.enums import OAuthProviderName
from wysteria.auth.exceptions import OAuthProviderError
from wysteria.auth.oauth.base import OAuthProfile, OAuthProvider, OAuthTokens
from wysteria.core.config import GoogleOAuthSettings

USERINFO_ENDPOINT = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleProvider(OAuthProvider):
    name = OAuthProviderName.GOOGLE
    authorization_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    default_scopes = ("openid", "email", "profile")

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        access_type: str = "offline",
        prompt: str = "select_account consent",
    ) -> None:
        super().__init__(client_id, client_secret)
        self.access_type = access_type
        self.prompt = prompt

    @classmethod
    def from_settings(cls, settings: GoogleOAuthSettings) -> GoogleProvider:
        assert settings.client_id is not None and settings.client_secret is not None
        return cls(
            settings.client_id,
            settings.client_secret.get_secret_value(),
            access_type=settings.access_type,
            prompt=settings.prompt,
        )

    def authorization_params(self) -> dict[str, str]:
        return {
            "access_type": self.access_type,
            "prompt": self.prompt,
            "include_granted_scopes": "true",
        }

    async def fetch_profile(
        self,
        client: httpx.AsyncClient,
        tokens: OAuthTokens,
        *,
        extra: Mapping[str, Any] | None = None,
    ) -> OAuthProfile:
        if not tokens.access_token:
            raise OAuthProviderError("Google did not return an access token")

        try:
            response = await client.get(
                USERINFO_ENDPOINT,
                headers={"Authorization": f"Bearer {tokens.access_token}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise OAuthProviderError("Fetching Google profile failed") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise OAuthProviderError("Unexpected Google profile response") from exc
        if not isinstance(payload, dict):
            raise OAuthProviderError("Unexpected Google profile response")
        subject = payload.get("sub")
        if not subject:
            raise OAuthProviderError("Google profile is missing a subject")

        return OAuthProfile(
            provider=self.name,
            account_id=str(subject),
            email=payload.get("email"),
            email_verified=bool(payload.get("email_verified", False)),
            name=payload.get("name") or payload.get("given_name") or "",
            image=payload.get("picture"),
        )
