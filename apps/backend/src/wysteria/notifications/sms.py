from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

import boto3
import structlog

from wysteria.core.config import AWSSettings, SmsSettings
from wysteria.core.constants import BRAND_NAME
from wysteria.notifications.exceptions import DeliveryError

logger = structlog.get_logger(__name__)


def otp_message(code: str) -> str:
    return f"Your {BRAND_NAME} verification code is: {code}"


class SmsSender(Protocol):
    async def send(self, phone_number: str, message: str) -> None:
        ...


class SNSSmsSender:
    """Publishes text messages directly to a phone number through Amazon SNS."""

    def __init__(self, settings: SmsSettings, aws: AWSSettings) -> None:
        self._sms_type = settings.sms_type
        self._client: Any = boto3.client("sns", **aws.client_kwargs())

    def _publish(self, phone_number: str, message: str) -> dict[str, Any]:
        return self._client.publish(
            PhoneNumber=phone_number,
            Message=message,
            MessageAttributes={
                "AWS.SNS.SMS.SMSType": {
                    "DataType": "String",
                    "StringValue": self._sms_type,
                }
            },
        )

    async def send(self, phone_number: str, message: str) -> None:
        try:
            response = await asyncio.to_thread(self._publish, phone_number, message)
        except Exception as exc:
            logger.exception("sms_send_failed", phone_number=phone_number)
            raise DeliveryError("sms", "Failed to send SMS") from exc

        logger.info(
            "sms_sent",
            phone_number=phone_number,
            message_id=response.get("MessageId"),
        )


class ConsoleSmsSender:
    async def send(self, phone_number: str, message: str) -> None:
        logger.warning("sms_sent", channel="console", phone_number=phone_number, body=message)


@dataclass(slots=True)
class SentSms:
    phone_number: str
    message: str


@dataclass
class InMemorySmsSender:
    outbox: list[SentSms] = field(default_factory=list)

    async def send(self, phone_number: str, message: str) -> None:
        self.outbox.append(SentSms(phone_number=phone_number, message=message))

    def last_for(self, phone_number: str) -> SentSms | None:
        for message in reversed(self.outbox):
            if message.phone_number == phone_number:
                return message
        return None
