from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from wysteria.auth.enums import EmailOTPType, OTPPurpose
from wysteria.auth.models import User, Verification
from wysteria.auth.otp import OTPService
from wysteria.core.config import get_settings
from wysteria.notifications import InMemoryEmailSender

TEST_EMAIL = "ada@example.com"

UserFactory = Callable[..., Awaitable[User]]


async def _send_code(
    client: AsyncClient, outbox: InMemoryEmailSender, *, email: str, otp_type: str
) -> str:
    response = await client.post(
        "/api/auth/email-otp/send-verification-otp",
        json={"email": email, "type": otp_type},
    )
    assert response.status_code == 200
    assert response.json() == {"success": True}
    sent = outbox.last_for(email)
    assert sent is not None
    return sent.otp


@pytest.mark.asyncio()
async def test_send_sign_in_code(
    async_client: AsyncClient, email_outbox: InMemoryEmailSender
) -> None:
    code = await _send_code(
        async_client, email_outbox, email=TEST_EMAIL, otp_type="sign-in"
    )
    assert len(code) == 6 and code.isdigit()
    assert email_outbox.outbox[-1].purpose is EmailOTPType.SIGN_IN


@pytest.mark.asyncio()
async def test_sign_in_creates_verified_user_and_sets_cookie(
    async_client: AsyncClient, email_outbox: InMemoryEmailSender
) -> None:
    code = await _send_code(
        async_client, email_outbox, email=TEST_EMAIL, otp_type="sign-in"
    )

    response = await async_client.post(
        "/api/auth/sign-in/email-otp", json={"email": TEST_EMAIL, "otp": code}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["token"]
    assert body["user"]["email"] == TEST_EMAIL
    assert body["user"]["emailVerified"] is True
    assert body["user"]["name"] == ""

    set_cookie = response.headers["set-cookie"]
    assert "wysteria.session_token=" in set_cookie
    assert "HttpOnly" in set_cookie
    assert "samesite=lax" in set_cookie.lower()


@pytest.mark.asyncio()
async def test_sign_in_with_wrong_code_is_rejected(
    async_client: AsyncClient, email_outbox: InMemoryEmailSender
) -> None:
    code = await _send_code(
        async_client, email_outbox, email=TEST_EMAIL, otp_type="sign-in"
    )
    wrong = "000000" if code != "000000" else "111111"

    response = await async_client.post(
        "/api/auth/sign-in/email-otp", json={"email": TEST_EMAIL, "otp": wrong}
    )
    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid OTP"}


@pytest.mark.asyncio()
async def test_sign_in_reuses_existing_user(
    async_client: AsyncClient,
    email_outbox: InMemoryEmailSender,
    user_factory: UserFactory,
) -> None:
    user = await user_factory(name="Ada Lovelace")
    code = await _send_code(
        async_client, email_outbox, email=TEST_EMAIL, otp_type="sign-in"
    )

    response = await async_client.post(
        "/api/auth/sign-in/email-otp", json={"email": TEST_EMAIL, "otp": code}
    )
    assert response.status_code == 200
    assert response.json()["user"]["id"] == str(user.id)
    assert response.json()["user"]["name"] == "Ada Lovelace"


@pytest.mark.asyncio()
async def test_email_verification_code_skips_unknown_address(
    async_client: AsyncClient, email_outbox: InMemoryEmailSender
) -> None:
    response = await async_client.post(
        "/api/auth/email-otp/send-verification-otp",
        json={"email": "nobody@example.com", "type": "email-verification"},
    )
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert email_outbox.outbox == []


@pytest.mark.asyncio()
async def test_verify_email_marks_user_verified(
    async_client: AsyncClient,
    email_outbox: InMemoryEmailSender,
    user_factory: UserFactory,
) -> None:
    await user_factory(email_verified=False)
    code = await _send_code(
        async_client, email_outbox, email=TEST_EMAIL, otp_type="email-verification"
    )

    response = await async_client.post(
        "/api/auth/email-otp/verify-email", json={"email": TEST_EMAIL, "otp": code}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] is True
    assert body["user"]["emailVerified"] is True


@pytest.mark.asyncio()
async def test_verify_email_for_unknown_user(
    async_client: AsyncClient, async_session: AsyncSession
) -> None:
    otp_service = OTPService.from_settings(get_settings().auth)
    code = await otp_service.issue(
        async_session, purpose=OTPPurpose.EMAIL_VERIFICATION, value="nobody@example.com"
    )

    response = await async_client.post(
        "/api/auth/email-otp/verify-email",
        json={"email": "nobody@example.com", "otp": code},
    )
    assert response.status_code == 400
    assert response.json() == {"detail": "User not found"}


@pytest.mark.asyncio()
async def test_sign_in_with_expired_code(
    async_client: AsyncClient,
    email_outbox: InMemoryEmailSender,
    async_session: AsyncSession,
) -> None:
    code = await _send_code(
        async_client, email_outbox, email=TEST_EMAIL, otp_type="sign-in"
    )
    await async_session.execute(
        update(Verification).values(
            expires_at=datetime.now(UTC) - timedelta(minutes=1)
        )
    )
    await async_session.commit()

    response = await async_client.post(
        "/api/auth/sign-in/email-otp", json={"email": TEST_EMAIL, "otp": code}
    )
    assert response.status_code == 400
    assert response.json() == {"detail": "OTP expired"}


@pytest.mark.asyncio()
async def test_sign_in_blocked_after_too_many_attempts(
    async_client: AsyncClient, email_outbox: InMemoryEmailSender
) -> None:
    code = await _send_code(
        async_client, email_outbox, email=TEST_EMAIL, otp_type="sign-in"
    )
    wrong = "000000" if code != "000000" else "111111"

    for _ in range(3):
        response = await async_client.post(
            "/api/auth/sign-in/email-otp", json={"email": TEST_EMAIL, "otp": wrong}
        )
        assert response.status_code == 400

    response = await async_client.post(
        "/api/auth/sign-in/email-otp", json={"email": TEST_EMAIL, "otp": code}
    )
    assert response.status_code == 403
    assert response.json() == {"detail": "Too many attempts"}

@pytest.mark.asyncio()
async def test_invalid_email_payload_is_rejected(async_client: AsyncClient) -> None:
    response = await async_client.post(
        "/api/auth/email-otp/send-verification-otp",
        json={"email": "not-an-email", "type": "sign-in"},
    )
    assert response.status_code == 422

    response = await async_client.post(
        "/api/auth/email-otp/send-verification-otp",
        json={"email": TEST_EMAIL, "type": "password-reset"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio()
async def test_get_session_returns_null_without_credentials(
    async_client: AsyncClient,
) -> None:
    response = await async_client.get("/api/auth/get-session")
    assert response.status_code == 200
    assert response.json() is None


@pytest.mark.asyncio()
async def test_get_session_with_bearer_token(
    async_client: AsyncClient, signed_in: dict[str, str]
) -> None:
    async_client.cookies.clear()
    response = await async_client.get(
        "/api/auth/get-session",
        headers={"Authorization": f"Bearer {signed_in['token']}"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["id"] == signed_in["user_id"]
    assert body["session"]["userId"] == signed_in["user_id"]
    assert "expiresAt" in body["session"]


@pytest.mark.asyncio()
async def test_get_session_with_cookie(
    async_client: AsyncClient, signed_in: dict[str, str]
) -> None:
    response = await async_client.get("/api/auth/get-session")
    assert response.status_code == 200
    assert response.json()["user"]["id"] == signed_in["user_id"]


@pytest.mark.asyncio()
async def test_list_sessions_requires_authentication(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/auth/list-sessions")
    assert response.status_code == 401
    assert response.json() == {"detail": "Unauthorized"}


@pytest.mark.asyncio()
async def test_list_sessions_returns_active_sessions(
    async_client: AsyncClient, signed_in: dict[str, str]
) -> None:
    response = await async_client.get(
        "/api/auth/list-sessions",
        headers={"Authorization": f"Bearer {signed_in['token']}"},
    )
    assert response.status_code == 200
    sessions = response.json()
    assert len(sessions) == 1
    assert sessions[0]["userId"] == signed_in["user_id"]


@pytest.mark.asyncio()
async def test_sign_out_revokes_session(
    async_client: AsyncClient, signed_in: dict[str, str]
) -> None:
    headers = {"Authorization": f"Bearer {signed_in['token']}"}
    response = await async_client.post("/api/auth/sign-out", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert "wysteria.session_token=" in response.headers["set-cookie"]

    async_client.cookies.clear()
    response = await async_client.get("/api/auth/get-session", headers=headers)
    assert response.json() is None
