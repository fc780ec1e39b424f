from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from wysteria.auth.enums import EmailOTPType
from wysteria.core.config import AWSSettings, EmailSettings, Settings, SmsSettings
from wysteria.notifications import (
    OTP_SUBJECT,
    ConsoleEmailSender,
    DeliveryError,
    InMemoryEmailSender,
    SESEmailSender,
    SNSSmsSender,
    build_email_sender,
    build_sms_sender,
    otp_message,
    render_otp_email,
)


def test_render_otp_email_for_sign_in() -> None:
    html = render_otp_email("123456", EmailOTPType.SIGN_IN, expires_in=300)
    assert "Verify Your Email" in html
    assert "Use the code below to sign in to your account:" in html
    assert "123456" in html
    assert "This code will expire in 5 minutes." in html
    assert "If you didn't request this code, please ignore this email." in html


def test_render_otp_email_for_verification() -> None:
    html = render_otp_email("654321", EmailOTPType.EMAIL_VERIFICATION, expires_in=600)
    assert "Thank you for signing up!" in html
    assert "This code will expire in 10 minutes." in html


def test_otp_subject_and_sms_body() -> None:
    assert OTP_SUBJECT == "Your Wysteria Sign In Code"
    assert otp_message("123456") == "Your Wysteria verification code is: 123456"


@pytest.mark.asyncio()
async def test_ses_sender_sends_html_email() -> None:
    with patch("boto3.client") as client_factory:
        ses = MagicMock()
        ses.send_email.return_value = {"MessageId": "msg-1"}
        client_factory.return_value = ses

        sender = SESEmailSender(
            EmailSettings(sender="noreply@wysteria.io"), AWSSettings(region="eu-west-1")
        )
        await sender.send_otp("ada@example.com", "123456", EmailOTPType.SIGN_IN)

    assert client_factory.call_args.args == ("ses",)
    assert client_factory.call_args.kwargs["region_name"] == "eu-west-1"
    kwargs = ses.send_email.call_args.kwargs
    assert kwargs["Source"] == "noreply@wysteria.io"
    assert kwargs["Destination"] == {"ToAddresses": ["ada@example.com"]}
    assert kwargs["Message"]["Subject"]["Data"] == OTP_SUBJECT
    assert "123456" in kwargs["Message"]["Body"]["Html"]["Data"]


@pytest.mark.asyncio()
async def test_ses_sender_wraps_failures() -> None:
    with patch("boto3.client") as client_factory:
        ses = MagicMock()
        ses.send_email.side_effect = RuntimeError("throttled")
        client_factory.return_value = ses
        sender = SESEmailSender(EmailSettings(), AWSSettings())

        with pytest.raises(DeliveryError) as exc_info:
            await sender.send_otp("ada@example.com", "123456", EmailOTPType.SIGN_IN)

    assert exc_info.value.channel == "email"


@pytest.mark.asyncio()
async def test_sns_sender_publishes_transactional_sms() -> None:
    with patch("boto3.client") as client_factory:
        sns = MagicMock()
        sns.publish.return_value = {"MessageId": "sms-1"}
        client_factory.return_value = sns

        sender = SNSSmsSender(SmsSettings(), AWSSettings())
        await sender.send("+16502530000", otp_message("123456"))

    assert client_factory.call_args.args == ("sns",)
    kwargs = sns.publish.call_args.kwargs
    assert kwargs["PhoneNumber"] == "+16502530000"
    assert kwargs["Message"] == "Your Wysteria verification code is: 123456"
    assert kwargs["MessageAttributes"]["AWS.SNS.SMS.SMSType"] == {
        "DataType": "String",
        "StringValue": "Transactional",
    }


@pytest.mark.asyncio()
async def test_sns_sender_wraps_failures() -> None:
    with patch("boto3.client") as client_factory:
        sns = MagicMock()
        sns.publish.side_effect = RuntimeError("opted out")
        client_factory.return_value = sns
        sender = SNSSmsSender(SmsSettings(), AWSSettings())

        with pytest.raises(DeliveryError) as exc_info:
            await sender.send("+16502530000", "hello")

    assert exc_info.value.channel == "sms"


def test_build_senders_follow_backend_setting() -> None:
    settings = Settings(
        email=EmailSettings(backend="console"), sms=SmsSettings(backend="memory")
    )
    assert isinstance(build_email_sender(settings), ConsoleEmailSender)
    assert build_sms_sender(settings).__class__.__name__ == "InMemorySmsSender"

    with patch("boto3.client"):
        settings = Settings(email=EmailSettings(backend="ses"))
        assert isinstance(build_email_sender(settings), SESEmailSender)


class FailingEmailSender:
    async def send_otp(self, email: str, otp: str, purpose: EmailOTPType) -> None:
        raise DeliveryError("email", "SES unavailable")


@pytest.mark.asyncio()
async def test_delivery_failure_returns_bad_gateway(
    app: FastAPI, async_client: AsyncClient
) -> None:
    app.state.auth_service._email_sender = FailingEmailSender()

    response = await async_client.post(
        "/api/auth/email-otp/send-verification-otp",
        json={"email": "ada@example.com", "type": "sign-in"},
    )
    assert response.status_code == 502
    assert response.json() == {"detail": "Failed to send verification code"}


@pytest.mark.asyncio()
async def test_in_memory_sender_keeps_outbox() -> None:
    sender = InMemoryEmailSender()
    await sender.send_otp("a@example.com", "111111", EmailOTPType.SIGN_IN)
    await sender.send_otp("a@example.com", "222222", EmailOTPType.SIGN_IN)
    last = sender.last_for("a@example.com")
    assert last is not None and last.otp == "222222"
    assert sender.last_for("b@example.com") is None
