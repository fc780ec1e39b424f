from __future__ import annotations

import uuid
from datetime import datetime

import phonenumbers
from pydantic import EmailStr, Field, field_validator

from wysteria.api.schemas.users import CamelModel, UserRead
from wysteria.auth.enums import EmailOTPType


def normalize_phone_number(value: str) -> str:
    """Return ``value`` in E.164 form, rejecting anything that is not."""

    candidate = value.strip()
    if not candidate.startswith("+"):
        raise ValueError("Phone number must be in E.164 format")
    try:
        parsed = phonenumbers.parse(candidate, None)
    except phonenumbers.NumberParseException as exc:
        raise ValueError("Invalid phone number") from exc
    if not phonenumbers.is_valid_number(parsed):
        raise ValueError("Invalid phone number")
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


class SessionRead(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime
    updated_at: datetime


class SendVerificationOTPRequest(CamelModel):
    email: EmailStr
    type: EmailOTPType


class SignInEmailOTPRequest(CamelModel):
    email: EmailStr
    otp: str = Field(min_length=1, max_length=16)


class VerifyEmailRequest(CamelModel):
    email: EmailStr
    otp: str = Field(min_length=1, max_length=16)


class SendPhoneOTPRequest(CamelModel):
    phone_number: str

    @field_validator("phone_number")
    @classmethod
    def _validate_phone_number(cls, value: str) -> str:
        return normalize_phone_number(value)


class VerifyPhoneRequest(SendPhoneOTPRequest):
    code: str = Field(min_length=1, max_length=16)
    disable_session: bool = False


class SocialSignInRequest(CamelModel):
    provider: str
    callback_url: str | None = Field(default=None, alias="callbackURL")


class OneTimeTokenVerifyRequest(CamelModel):
    token: str = Field(min_length=1)


class SuccessResponse(CamelModel):
    success: bool = True


class SessionTokenResponse(CamelModel):
    token: str
    user: UserRead


class VerifyEmailResponse(CamelModel):
    status: bool = True
    user: UserRead


class PhoneVerifyResponse(CamelModel):
    status: bool = True
    token: str | None = None
    user: UserRead


class SocialSignInResponse(CamelModel):
    url: str
    redirect: bool = True


class SessionResponse(CamelModel):
    session: SessionRead
    user: UserRead
