from .users import (
    AvatarUploadRequest,
    AvatarUploadResponse,
    CamelModel,
    PublicUser,
    UpdateProfileRequest,
    UserRead,
)

__all__ = [
    "AvatarUploadRequest",
    "AvatarUploadResponse",
    "CamelModel",
    "PublicUser",
    "UpdateProfileRequest",
    "UserRead",
]
