from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from wysteria.auth.enums import OTPPurpose
from wysteria.auth.exceptions import (
    OTPAttemptsExceededError,
    OTPExpiredError,
    OTPInvalidError,
)
from wysteria.auth.models import Verification
from wysteria.auth.tokens import generate_otp, hash_token
from wysteria.core.config import AuthSettings
from wysteria.observability import metrics_service

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


def otp_identifier(purpose: OTPPurpose, value: str) -> str:
    return f"{purpose.value}-otp:{value}"


class OTPService:
    """Issues and checks numeric one-time passcodes.

    Only a digest of each code is persisted. A verification row is removed on
    success, on expiry, and once the failed-attempt budget is exhausted, so a
    code can never be redeemed twice.
    """

    def __init__(
        self,
        *,
        length: int = 6,
        expires_in: int = 300,
        allowed_attempts: int = 3,
    ) -> None:
        self._length = length
        self._expires_in = timedelta(seconds=expires_in)
        self._allowed_attempts = allowed_attempts

    @classmethod
    def from_settings(cls, settings: AuthSettings) -> OTPService:
        return cls(
            length=settings.otp_length,
            expires_in=settings.otp_expires_in,
            allowed_attempts=settings.otp_allowed_attempts,
        )

    async def issue(
        self, session: AsyncSession, *, purpose: OTPPurpose, value: str
    ) -> str:
        identifier = otp_identifier(purpose, value)
        await session.execute(
            delete(Verification).where(Verification.identifier == identifier)
        )

        code = generate_otp(self._length)
        session.add(
            Verification(
                identifier=identifier,
                value=hash_token(code),
                attempts=0,
                expires_at=_now() + self._expires_in,
            )
        )
        await session.commit()
        logger.info("otp_issued", purpose=purpose.value)
        return code

    async def verify(
        self,
        session: AsyncSession,
        *,
        purpose: OTPPurpose,
        value: str,
        code: str,
    ) -> None:
        identifier = otp_identifier(purpose, value)
        record = await session.scalar(
            select(Verification)
            .where(Verification.identifier == identifier)
            .order_by(Verification.created_at.desc())
            .limit(1)
        )
        if record is None:
            metrics_service.record_otp_verification(purpose.value, "missing")
            raise OTPInvalidError("No pending code")

        if record.expires_at <= _now():
            await session.delete(record)
            await session.commit()
            metrics_service.record_otp_verification(purpose.value, "expired")
            raise OTPExpiredError("Code has expired")

        if record.attempts >= self._allowed_attempts:
            await session.delete(record)
            await session.commit()
            metrics_service.record_otp_verification(purpose.value, "exhausted")
            raise OTPAttemptsExceededError("Too many attempts")

        if not secrets.compare_digest(record.value, hash_token(code.strip())):
            record.attempts += 1
            await session.commit()
            metrics_service.record_otp_verification(purpose.value, "invalid")
            logger.info(
                "otp_rejected", purpose=purpose.value, attempts=record.attempts
            )
            raise OTPInvalidError("Code does not match")

        await session.delete(record)
        await session.flush()
        metrics_service.record_otp_verification(purpose.value, "success")
