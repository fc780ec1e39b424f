from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wysteria.auth.models import User

_MUTABLE_FIELDS = frozenset(
    {
        "name",
        "email",
        "email_verified",
        "image",
        "phone_number",
        "phone_number_verified",
    }
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Persistence helpers for :class:`User` rows."""

    async def get_user_by_id(
        self, session: AsyncSession, user_id: uuid.UUID
    ) -> User | None:
        return await session.get(User, user_id)

    async def get_user_by_email(self, session: AsyncSession, email: str) -> User | None:
        stmt = select(User).where(User.email == normalize_email(email))
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_by_phone_number(
        self, session: AsyncSession, phone_number: str
    ) -> User | None:
        stmt = select(User).where(User.phone_number == phone_number)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_user(
        self,
        session: AsyncSession,
        *,
        email: str,
        name: str = "",
        email_verified: bool = False,
        image: str | None = None,
        phone_number: str | None = None,
        phone_number_verified: bool | None = None,
    ) -> User:
        """Add a new user and flush it so the primary key is available."""

        user = User(
            email=normalize_email(email),
            name=name,
            email_verified=email_verified,
            image=image,
            phone_number=phone_number,
            phone_number_verified=phone_number_verified,
        )
        session.add(user)
        await session.flush()
        return user

    async def update_user(
        self, session: AsyncSession, user: User, changes: Mapping[str, Any]
    ) -> User:
        """Apply ``changes`` to mutable columns and commit."""

        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported user fields: {', '.join(sorted(unknown))}")

        for key, value in changes.items():
            setattr(user, key, value)
        await session.commit()
        await session.refresh(user)
        return user
