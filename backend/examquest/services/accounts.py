from __future__ import annotations

import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from examquest.db.models import Profile, ProfileRole, User

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"[^A-Za-z0-9._-]+")


def default_username(email: str) -> str:
    local_part = email.split("@", 1)[0]
    cleaned = USERNAME_PATTERN.sub("", local_part)[:48]
    return cleaned or "player"


async def username_taken(db: AsyncSession, username: str, *, exclude_user_id: str | None = None) -> bool:
    query = select(Profile.id).where(Profile.username == username)
    if exclude_user_id is not None:
        query = query.where(Profile.id != exclude_user_id)
    return await db.scalar(query.limit(1)) is not None


async def _available_username(db: AsyncSession, base: str) -> str:
    candidate = base
    suffix = 1
    while await username_taken(db, candidate):
        suffix += 1
        candidate = f"{base}{suffix}"
    return candidate


async def get_or_create_profile(
    db: AsyncSession,
    user: User,
    *,
    username: str | None = None,
    role: ProfileRole = ProfileRole.user,
) -> Profile:
    """Return the user's profile, creating a zero-XP one on first sign-in."""
    profile = await db.scalar(select(Profile).where(Profile.id == user.id))
    if profile is not None:
        return profile

    profile = Profile(
        id=user.id,
        username=username or await _available_username(db, default_username(user.email)),
        email=user.email,
        role=role,
        avatar_url="",
        xp=0,
        chapters_completed=[],
        badges=[],
        titles=[],
    )
    db.add(profile)
    await db.flush()
    logger.info("Created profile for user %s", user.id)
    return profile
