from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from examquest.db.models import Profile, ProfileRole

UPDATABLE_FIELDS = frozenset(
    {
        "username",
        "email",
        "role",
        "avatar_url",
        "xp",
        "chapters_completed",
        "badges",
        "titles",
    }
)


class ProfileStoreError(RuntimeError):
    """Raised when the profile store cannot complete a read or write."""


@dataclass(slots=True)
class ProfileRecord:
    user_id: str
    username: str
    email: str | None = None
    role: str = ProfileRole.user.value
    avatar_url: str = ""
    xp: int = 0
    chapters_completed: list[str] = field(default_factory=list)
    badges: list[str] = field(default_factory=list)
    titles: list[str] = field(default_factory=list)
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, profile: Profile) -> ProfileRecord:
        return cls(
            user_id=profile.id,
            username=profile.username,
            email=profile.email,
            role=ProfileRole(profile.role).value,
            avatar_url=profile.avatar_url or "",
            xp=profile.xp or 0,
            chapters_completed=list(profile.chapters_completed or []),
            badges=list(profile.badges or []),
            titles=list(profile.titles or []),
            created_at=profile.created_at,
        )


class ProfileStore(Protocol):
    async def fetch(self, user_id: str) -> ProfileRecord | None: ...

    async def update(self, user_id: str, fields: dict[str, Any]) -> None: ...

    async def delete(self, user_id: str) -> bool: ...


class SqlProfileStore:
    """Profile store backed by the `profiles` table.

    Each call opens its own session so callers never share a transaction with
    the request that triggered them.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def fetch(self, user_id: str) -> ProfileRecord | None:
        try:
            async with self._session_maker() as db:
                profile = await db.scalar(select(Profile).where(Profile.id == user_id))
        except SQLAlchemyError as exc:
            raise ProfileStoreError(f"Could not load profile {user_id}") from exc
        if profile is None:
            return None
        return ProfileRecord.from_model(profile)

    async def update(self, user_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        try:
            async with self._session_maker() as db:
                profile = await db.scalar(select(Profile).where(Profile.id == user_id))
                if profile is None:
                    raise ProfileStoreError(f"Profile {user_id} not found")
                for name, value in fields.items():
                    if isinstance(value, list):
                        value = list(value)
                    setattr(profile, name, value)
                await db.commit()
        except SQLAlchemyError as exc:
            raise ProfileStoreError(f"Could not update profile {user_id}") from exc

    async def delete(self, user_id: str) -> bool:
        try:
            async with self._session_maker() as db:
                result = await db.execute(delete(Profile).where(Profile.id == user_id))
                await db.commit()
        except SQLAlchemyError as exc:
            raise ProfileStoreError(f"Could not delete profile {user_id}") from exc
        return bool(result.rowcount)
