from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select

from examquest.api.deps import CurrentUser, DBSession
from examquest.core.security import hash_password, verify_password
from examquest.db.models import AuthCredential
from examquest.schemas.auth import MessageResponse
from examquest.schemas.profile import PasswordChangeRequest, ProfileRead, ProfileUpdate
from examquest.services.accounts import get_or_create_profile, username_taken

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("/me", response_model=ProfileRead)
async def get_my_profile(current_user: CurrentUser, db: DBSession) -> ProfileRead:
    profile = await get_or_create_profile(db, current_user)
    await db.commit()
    await db.refresh(profile)
    return ProfileRead.model_validate(profile)


@router.patch("/me", response_model=ProfileRead)
async def update_my_profile(
    payload: ProfileUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> ProfileRead:
    profile = await get_or_create_profile(db, current_user)

    if payload.username is not None and payload.username != profile.username:
        if await username_taken(db, payload.username, exclude_user_id=current_user.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already taken")
        profile.username = payload.username
    if payload.avatar_url is not None:
        profile.avatar_url = payload.avatar_url.strip()

    await db.commit()
    await db.refresh(profile)
    return ProfileRead.model_validate(profile)


@router.post("/me/password", response_model=MessageResponse)
async def change_my_password(
    payload: PasswordChangeRequest,
    current_user: CurrentUser,
    db: DBSession,
) -> MessageResponse:
    credential = await db.scalar(
        select(AuthCredential).where(AuthCredential.user_id == current_user.id)
    )
    if credential is None or not verify_password(payload.current_password, credential.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    credential.password_hash = hash_password(payload.new_password)
    credential.password_updated_at = datetime.now(UTC)
    await db.commit()
    return MessageResponse(detail="Password updated")
