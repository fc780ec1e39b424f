"""Outbound email and SMS delivery for one-time passcodes."""

from __future__ import annotations

from wysteria.core.config import Settings
from wysteria.notifications.email import (
    OTP_SUBJECT,
    ConsoleEmailSender,
    EmailSender,
    InMemoryEmailSender,
    SESEmailSender,
    render_otp_email,
)
from wysteria.notifications.exceptions import DeliveryError
from wysteria.notifications.sms import (
    ConsoleSmsSender,
    InMemorySmsSender,
    SmsSender,
    SNSSmsSender,
    otp_message,
)

__all__ = [
    "OTP_SUBJECT",
    "ConsoleEmailSender",
    "ConsoleSmsSender",
    "DeliveryError",
    "EmailSender",
    "InMemoryEmailSender",
    "InMemorySmsSender",
    "SESEmailSender",
    "SNSSmsSender",
    "SmsSender",
    "build_email_sender",
    "build_sms_sender",
    "otp_message",
    "render_otp_email",
]


def build_email_sender(settings: Settings) -> EmailSender:
    backend = settings.email.backend
    if backend == "console":
        return ConsoleEmailSender()
    if backend == "memory":
        return InMemoryEmailSender()
    return SESEmailSender(
        settings.email, settings.aws, expires_in=settings.auth.otp_expires_in
    )


def build_sms_sender(settings: Settings) -> SmsSender:
    backend = settings.sms.backend
    if backend == "console":
        return ConsoleSmsSender()
    if backend == "memory":
        return InMemorySmsSender()
    return SNSSmsSender(settings.sms, settings.aws)
