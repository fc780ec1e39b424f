from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Literal

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

ProfileName = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)
]
_URL_ADAPTER = TypeAdapter(AnyUrl)

AvatarContentType = Literal["image/png", "image/jpeg", "image/webp", "image/gif"]


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserRead(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    email_verified: bool
    image: str | None = None
    phone_number: str | None = None
    phone_number_verified: bool | None = None
    created_at: datetime
    updated_at: datetime


class PublicUser(CamelModel):
    id: uuid.UUID
    name: str
    image: str | None = None


class UpdateProfileRequest(CamelModel):
    name: ProfileName | None = None
    image: str | None = Field(default=None, max_length=2048)

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def _name_not_null(cls, value: str | None) -> str | None:
        if value is None:
            raise ValueError("name cannot be null")
        return value

    @field_validator("image")
    @classmethod
    def _image_is_url(cls, value: str | None) -> str | None:
        # Validated as a URL but stored exactly as sent.
        if value is None:
            return value
        try:
            _URL_ADAPTER.validate_python(value)
        except ValidationError as exc:
            raise ValueError("image must be a valid URL") from exc
        return value

    def changes(self) -> dict[str, str | None]:
        """Fields explicitly sent by the client, ready for persistence."""

        updates: dict[str, str | None] = {}
        fields_set = self.model_fields_set
        if self.name is not None:
            updates["name"] = self.name
        if "image" in fields_set:
            updates["image"] = self.image
        return updates


class AvatarUploadRequest(CamelModel):
    content_type: AvatarContentType


class AvatarUploadResponse(CamelModel):
    upload_url: str
    image_url: str
    method: Literal["PUT"] = "PUT"
    headers: dict[str, str]
    expires_in: int = Field(..., description="Upload URL lifetime in seconds")
