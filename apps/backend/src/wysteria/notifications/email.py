from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

import boto3
import structlog
from jinja2 import Environment, PackageLoader, select_autoescape

from wysteria.auth.enums import EmailOTPType
from wysteria.core.config import AWSSettings, EmailSettings
from wysteria.core.constants import BRAND_NAME
from wysteria.notifications.exceptions import DeliveryError

logger = structlog.get_logger(__name__)

OTP_SUBJECT = f"Your {BRAND_NAME} Sign In Code"

_INTRO_BY_TYPE = {
    EmailOTPType.SIGN_IN: "Use the code below to sign in to your account:",
    EmailOTPType.EMAIL_VERIFICATION: (
        "Thank you for signing up! Please verify your email address by "
        "entering the code below:"
    ),
}

_templates = Environment(
    loader=PackageLoader("wysteria.notifications", "templates"),
    autoescape=select_autoescape(["html"]),
)


def render_otp_email(otp: str, purpose: EmailOTPType, *, expires_in: int = 300) -> str:
    template = _templates.get_template("otp_email.html")
    return template.render(
        subject=OTP_SUBJECT,
        heading="Verify Your Email",
        intro=_INTRO_BY_TYPE[purpose],
        otp=otp,
        expires_in_minutes=max(1, expires_in // 60),
    )


class EmailSender(Protocol):
    async def send_otp(self, email: str, otp: str, purpose: EmailOTPType) -> None:
        ...


class SESEmailSender:
    """Sends passcode emails through Amazon SES."""

    def __init__(
        self,
        settings: EmailSettings,
        aws: AWSSettings,
        *,
        expires_in: int = 300,
    ) -> None:
        self._sender = settings.sender
        self._expires_in = expires_in
        self._client: Any = boto3.client("ses", **aws.client_kwargs())

    def _send(self, email: str, html: str) -> dict[str, Any]:
        return self._client.send_email(
            Source=self._sender,
            Destination={"ToAddresses": [email]},
            Message={
                "Subject": {"Data": OTP_SUBJECT, "Charset": "UTF-8"},
                "Body": {"Html": {"Data": html, "Charset": "UTF-8"}},
            },
        )

    async def send_otp(self, email: str, otp: str, purpose: EmailOTPType) -> None:
        html = render_otp_email(otp, purpose, expires_in=self._expires_in)
        try:
            response = await asyncio.to_thread(self._send, email, html)
        except Exception as exc:
            logger.exception("email_send_failed", purpose=purpose.value)
            raise DeliveryError("email", "Failed to send verification email") from exc

        logger.info(
            "otp_sent",
            channel="email",
            purpose=purpose.value,
            message_id=response.get("MessageId"),
        )


class ConsoleEmailSender:
    """Development sender that writes the passcode to the log."""

    async def send_otp(self, email: str, otp: str, purpose: EmailOTPType) -> None:
        logger.warning(
            "otp_sent", channel="console", email=email, purpose=purpose.value, otp=otp
        )


@dataclass(slots=True)
class SentEmail:
    email: str
    otp: str
    purpose: EmailOTPType


@dataclass
class InMemoryEmailSender:
    outbox: list[SentEmail] = field(default_factory=list)

    async def send_otp(self, email: str, otp: str, purpose: EmailOTPType) -> None:
        self.outbox.append(SentEmail(email=email, otp=otp, purpose=purpose))

    def last_for(self, email: str) -> SentEmail | None:
        for message in reversed(self.outbox):
            if message.email == email:
                return message
        return None
