from __future__ import annotations


class AuthError(Exception):
    """Base class for authentication related errors."""


class OTPInvalidError(AuthError):
    """Raised when a one-time passcode does not match the pending one."""


class OTPExpiredError(AuthError):
    """Raised when the pending one-time passcode has expired."""


class OTPAttemptsExceededError(AuthError):
    """Raised once the allowed number of failed attempts has been used up."""


class UserNotFoundError(AuthError):
    """Raised when a flow requires an existing user and none matches."""


class PhoneSignUpDisabledError(AuthError):
    """Raised when an unknown phone number verifies but sign-up is disabled."""


class UnsupportedProviderError(AuthError):
    """Raised for OAuth providers that are unknown or not configured."""


class OAuthStateError(AuthError):
    """Raised when the OAuth state is missing, expired or already consumed."""


class OAuthProviderError(AuthError):
    """Raised when the provider rejects the exchange or returns bad data."""


class AccountNotLinkedError(OAuthProviderError):
    """Raised when a provider email matches a user but is not verified."""


class InvalidCallbackURLError(AuthError):
    """Raised when a callback URL points outside the trusted origins."""


class OneTimeTokenInvalidError(AuthError):
    """Raised when a one-time token is unknown, expired or already used."""

