from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wysteria.auth.enums import OTPPurpose
from wysteria.auth.exceptions import (
    OTPAttemptsExceededError,
    OTPExpiredError,
    OTPInvalidError,
)
from wysteria.auth.models import Verification
from wysteria.auth.otp import OTPService, otp_identifier
from wysteria.auth.tokens import hash_token

EMAIL = "otp@example.com"


async def _pending_count(session: AsyncSession) -> int:
    return await session.scalar(select(func.count()).select_from(Verification)) or 0


@pytest.mark.asyncio()
async def test_issue_stores_only_a_digest(async_session: AsyncSession) -> None:
    service = OTPService()
    code = await service.issue(async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL)

    record = await async_session.scalar(select(Verification))
    assert record is not None
    assert record.identifier == otp_identifier(OTPPurpose.SIGN_IN, EMAIL)
    assert record.identifier == "sign-in-otp:otp@example.com"
    assert record.value == hash_token(code)
    assert record.attempts == 0


@pytest.mark.asyncio()
async def test_verify_consumes_the_code(async_session: AsyncSession) -> None:
    service = OTPService()
    code = await service.issue(async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL)

    await service.verify(
        async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL, code=code
    )
    await async_session.commit()
    assert await _pending_count(async_session) == 0

    with pytest.raises(OTPInvalidError):
        await service.verify(
            async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL, code=code
        )


@pytest.mark.asyncio()
async def test_reissue_replaces_previous_code(async_session: AsyncSession) -> None:
    service = OTPService()
    first = await service.issue(async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL)
    second = await service.issue(async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL)
    assert await _pending_count(async_session) == 1

    if first != second:
        with pytest.raises(OTPInvalidError):
            await service.verify(
                async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL, code=first
            )
    await service.verify(
        async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL, code=second
    )


@pytest.mark.asyncio()
async def test_purposes_do_not_share_codes(async_session: AsyncSession) -> None:
    service = OTPService()
    code = await service.issue(
        async_session, purpose=OTPPurpose.EMAIL_VERIFICATION, value=EMAIL
    )
    with pytest.raises(OTPInvalidError):
        await service.verify(
            async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL, code=code
        )


@pytest.mark.asyncio()
async def test_attempt_budget_is_enforced(async_session: AsyncSession) -> None:
    service = OTPService(allowed_attempts=3)
    code = await service.issue(async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL)
    wrong = "000000" if code != "000000" else "111111"

    for _ in range(3):
        with pytest.raises(OTPInvalidError):
            await service.verify(
                async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL, code=wrong
            )

    with pytest.raises(OTPAttemptsExceededError):
        await service.verify(
            async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL, code=code
        )
    assert await _pending_count(async_session) == 0


@pytest.mark.asyncio()
async def test_expired_code_is_rejected_and_removed(async_session: AsyncSession) -> None:
    service = OTPService(expires_in=-1)
    code = await service.issue(async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL)

    with pytest.raises(OTPExpiredError):
        await service.verify(
            async_session, purpose=OTPPurpose.SIGN_IN, value=EMAIL, code=code
        )
    assert await _pending_count(async_session) == 0
