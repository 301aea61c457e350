from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from examquest.core.security import decode_access_token
from examquest.db.models import Profile, ProfileRole, User
from examquest.services.catalog import ContentCatalog
from examquest.services.game_session import GameSession, GameSessionRegistry
from examquest.services.profile_store import ProfileStore

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    session_maker = request.app.state.session_maker
    async with session_maker() as session:
        yield session


DBSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    request: Request,
    db: DBSession,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization",
        )

    settings = request.app.state.settings

    try:
        payload = decode_access_token(
            token=credentials.credentials,
            secret_key=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
        )

    user = await db.scalar(select(User).where(User.id == subject, User.is_active.is_(True)))
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_admin_user(current_user: CurrentUser, db: DBSession) -> User:
    role = await db.scalar(select(Profile.role).where(Profile.id == current_user.id))
    if role != ProfileRole.admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


AdminUser = Annotated[User, Depends(get_admin_user)]


def get_catalog(request: Request) -> ContentCatalog:
    return request.app.state.catalog


Catalog = Annotated[ContentCatalog, Depends(get_catalog)]


def get_session_registry(request: Request) -> GameSessionRegistry:
    return request.app.state.game_sessions


SessionRegistry = Annotated[GameSessionRegistry, Depends(get_session_registry)]


def get_profile_store(request: Request) -> ProfileStore:
    return request.app.state.profile_store


Profiles = Annotated[ProfileStore, Depends(get_profile_store)]


async def get_game_session(current_user: CurrentUser, registry: SessionRegistry) -> GameSession:
    return await registry.get(current_user.id)


CurrentGame = Annotated[GameSession, Depends(get_game_session)]
