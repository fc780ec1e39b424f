from __future__ import annotations

from enum import StrEnum


class OTPPurpose(StrEnum):
    """Namespaces for one-time passcodes stored in the verification table."""

    SIGN_IN = "sign-in"
    EMAIL_VERIFICATION = "email-verification"
    PHONE_NUMBER = "phone-number"


class EmailOTPType(StrEnum):
    """OTP types a client may request over email."""

    SIGN_IN = "sign-in"
    EMAIL_VERIFICATION = "email-verification"


class OAuthProviderName(StrEnum):
    GOOGLE = "google"
    APPLE = "apple"


class SignInMethod(StrEnum):
    """How a session was established, used for metrics and logs."""

    EMAIL_OTP = "email-otp"
    PHONE_NUMBER = "phone-number"
    GOOGLE = "google"
    APPLE = "apple"
    ONE_TIME_TOKEN = "one-time-token"
