from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from wysteria.api.schemas.users import (
    AvatarUploadRequest,
    AvatarUploadResponse,
    PublicUser,
    UpdateProfileRequest,
    UserRead,
)
from wysteria.auth.dependencies import CurrentUser, get_current_user, get_db, get_storage
from wysteria.auth.models import User
from wysteria.core.constants import API_V1_PREFIX
from wysteria.storage import ObjectStorage, StorageError
from wysteria.users import UserService

router = APIRouter(prefix=f"{API_V1_PREFIX}/user", tags=["User"])
logger = structlog.get_logger(__name__)

_user_service = UserService()


def get_user_service() -> UserService:
    return _user_service


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


async def _load_current_user(
    session: AsyncSession, users: UserService, current_user: CurrentUser
) -> User:
    user = await users.get_user_by_id(session, current_user.id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized"
        )
    return user


@router.get("/me", response_model=UserRead, summary="Get the current user")
async def get_me(
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
) -> UserRead:
    user = await _load_current_user(session, users, current_user)
    return UserRead.model_validate(user)


@router.patch("/me", response_model=UserRead, summary="Update the current user")
async def update_me(
    payload: UpdateProfileRequest,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
) -> UserRead:
    user = await _load_current_user(session, users, current_user)
    changes = payload.changes()
    if changes:
        user = await users.update_user(session, user, changes)
        logger.info("user_profile_updated", user_id=str(user.id), fields=sorted(changes))
    return UserRead.model_validate(user)


@router.post(
    "/me/avatar",
    response_model=AvatarUploadResponse,
    summary="Create a presigned upload URL for a new avatar",
)
async def create_avatar_upload(
    payload: AvatarUploadRequest,
    current_user: CurrentUser = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
) -> AvatarUploadResponse:
    try:
        upload = storage.presign_avatar_upload(current_user.id, payload.content_type)
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)
        ) from exc

    return AvatarUploadResponse(
        upload_url=upload.upload_url,
        image_url=upload.public_url,
        headers={"Content-Type": upload.content_type},
        expires_in=upload.expires_in,
    )


@router.get("/{user_id}", response_model=PublicUser, summary="Get a public profile")
async def get_user(
    user_id: str,
    session: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
) -> PublicUser:
    try:
        parsed_id = uuid.UUID(user_id)
    except ValueError as exc:
        raise _not_found() from exc

    user = await users.get_user_by_id(session, parsed_id)
    if user is None:
        raise _not_found()
    return PublicUser.model_validate(user)
