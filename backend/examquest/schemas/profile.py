from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from examquest.db.models import ProfileRole


class ProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str | None
    role: ProfileRole
    avatar_url: str
    xp: int
    chapters_completed: list[str]
    badges: list[str]
    titles: list[str]
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(BaseModel):
    username: str | None = Field(
        default=None,
        min_length=3,
        max_length=48,
        pattern=r"^[A-Za-z0-9._-]+$",
    )
    avatar_url: str | None = Field(default=None, max_length=1024)


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=8, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)
