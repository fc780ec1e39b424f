"""OAuth identity providers used for social sign-in."""

from __future__ import annotations

from wysteria.auth.enums import OAuthProviderName
from wysteria.auth.oauth.apple import AppleProvider
from wysteria.auth.oauth.base import OAuthProfile, OAuthProvider, OAuthTokens
from wysteria.auth.oauth.google import GoogleProvider
from wysteria.auth.oauth.state import OAuthState, OAuthStateStore
from wysteria.core.config import Settings

__all__ = [
    "AppleProvider",
    "GoogleProvider",
    "OAuthProfile",
    "OAuthProvider",
    "OAuthState",
    "OAuthStateStore",
    "OAuthTokens",
    "build_providers",
]


def build_providers(settings: Settings) -> dict[OAuthProviderName, OAuthProvider]:
    """Instantiate the providers that have credentials configured."""

    providers: dict[OAuthProviderName, OAuthProvider] = {}
    if settings.google.enabled:
        providers[OAuthProviderName.GOOGLE] = GoogleProvider.from_settings(
            settings.google
        )
    if settings.apple.enabled:
        providers[OAuthProviderName.APPLE] = AppleProvider.from_settings(
            settings.apple
        )
    return providers
