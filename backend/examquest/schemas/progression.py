from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    level: Literal["success", "info", "warning", "error"]
    message: str
    created_at: datetime


class ProgressionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    xp: int
    level: int
    next_level_xp: int
    unlocked_tiers: list[int]
    completed_chapters: list[str]
    badges: list[str]
    titles: list[str]
    persistence_pending: bool = False
    notifications: list[NotificationRead] = Field(default_factory=list)

