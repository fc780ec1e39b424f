"""Passwordless authentication domain package."""

from .enums import EmailOTPType, OAuthProviderName, OTPPurpose, SignInMethod
from .models import Account, User, UserSession, Verification

__all__ = [
    "Account",
    "EmailOTPType",
    "OAuthProviderName",
    "OTPPurpose",
    "SignInMethod",
    "User",
    "UserSession",
    "Verification",
]
