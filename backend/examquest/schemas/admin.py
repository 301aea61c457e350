from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from examquest.db.models import ContentItemStatus, ContentItemType, LogLevel, ProfileRole
from examquest.schemas.profile import ProfileRead


class AdminUserCreate(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=48, pattern=r"^[A-Za-z0-9._-]+$")
    password: str = Field(min_length=8, max_length=128)
    role: ProfileRole = ProfileRole.user


class AdminProfileUpdate(BaseModel):
    username: str | None = Field(
        default=None,
        min_length=3,
        max_length=48,
        pattern=r"^[A-Za-z0-9._-]+$",
    )
    role: ProfileRole | None = None
    avatar_url: str | None = Field(default=None, max_length=1024)
    xp: int | None = Field(default=None, ge=0)
    chapters_completed: list[str] | None = None
    badges: list[str] | None = None
    titles: list[str] | None = None


class BulkIdsRequest(BaseModel):
    ids: list[str] = Field(min_length=1, max_length=500)


class BulkDeleteResponse(BaseModel):
    deleted: int


class AdminUserList(BaseModel):
    total: int
    items: list[ProfileRead]


class NameValue(BaseModel):
    name: str
    value: int


class AdminStatsRead(BaseModel):
    xp_distribution: list[NameValue]
    chapter_completion: list[NameValue]
    user_growth: list[NameValue]


class AdminDashboardRead(BaseModel):
    user_count: int
    admin_count: int
    total_xp: int
    average_xp: float
    completed_chapters: int
    pending_moderation: int
    recent_users: list[ProfileRead]


class ContentItemCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    item_type: ContentItemType
    content: str = Field(min_length=1)
    reported_by: str | None = Field(default=None, max_length=64)
    user_id: str | None = None
    username: str | None = Field(default=None, max_length=64)


class ContentItemUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    content: str | None = Field(default=None, min_length=1)
    status: ContentItemStatus | None = None


class ContentItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    item_type: ContentItemType
    content: str
    status: ContentItemStatus
    reported_by: str | None
    user_id: str | None
    username: str | None
    created_at: datetime


class SystemLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    level: LogLevel
    message: str
    source: str
    user_id: str | None
    details_json: dict[str, Any]
    created_at: datetime


class AdminPanelRead(BaseModel):
    dashboard: AdminDashboardRead
    stats: AdminStatsRead
    recent_logs: list[SystemLogRead]


class SystemSettingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    value: str
    description: str
    category: str
    updated_at: datetime


class SystemSettingsUpdate(BaseModel):
    values: dict[str, str] = Field(min_length=1)

