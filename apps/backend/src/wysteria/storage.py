from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from wysteria.core.config import AWSSettings, S3Settings

logger = structlog.get_logger(__name__)

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


class StorageError(RuntimeError):
    """Raised when an upload URL cannot be produced."""


@dataclass(frozen=True)
class PresignedUpload:
    upload_url: str
    public_url: str
    key: str
    content_type: str
    expires_in: int


class ObjectStorage:
    """Presigned uploads to the asset bucket."""

    def __init__(self, settings: S3Settings, aws: AWSSettings) -> None:
        self.settings = settings
        self._region = aws.region
        self._client: Any = boto3.client("s3", **aws.client_kwargs())

    def public_url(self, key: str) -> str:
        if self.settings.public_base_url:
            return f"{self.settings.public_base_url.rstrip('/')}/{key}"
        return f"https://{self.settings.bucket}.s3.{self._region}.amazonaws.com/{key}"

    def presign_avatar_upload(
        self, user_id: uuid.UUID, content_type: str
    ) -> PresignedUpload:
        extension = _EXTENSIONS.get(content_type)
        if extension is None:
            raise StorageError(f"Unsupported content type {content_type}")

        key = f"avatars/{user_id}/{uuid.uuid4().hex}.{extension}"
        expires_in = self.settings.presign_ttl_seconds
        try:
            upload_url = self._client.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": self.settings.bucket,
                    "Key": key,
                    "ContentType": content_type,
                },
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("avatar_presign_failed", user_id=str(user_id))
            raise StorageError("Failed to create upload URL") from exc

        logger.info("avatar_upload_presigned", user_id=str(user_id), key=key)
        return PresignedUpload(
            upload_url=upload_url,
            public_url=self.public_url(key),
            key=key,
            content_type=content_type,
            expires_in=expires_in,
        )
