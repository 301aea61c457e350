import enum
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from examquest.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class ProfileRole(enum.StrEnum):
    user = "user"
    admin = "admin"


class ContentItemType(enum.StrEnum):
    question = "question"
    comment = "comment"
    feedback = "feedback"


class ContentItemStatus(enum.StrEnum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class LogLevel(enum.StrEnum):
    info = "info"
    warning = "warning"
    error = "error"
    success = "success"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        nullable=False,
    )

    credential: Mapped["AuthCredential"] = relationship(
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )


class AuthCredential(Base):
    __tablename__ = "auth_credentials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    password_hash: Mapped[str] = mapped_column(String(512), nullable=False)
    password_algo: Mapped[str] = mapped_column(String(64), default="argon2id", nullable=False)
    password_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        nullable=False,
    )

    user: Mapped[User] = relationship(back_populates="credential")


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    role: Mapped[ProfileRole] = mapped_column(
        Enum(ProfileRole, native_enum=False),
        default=ProfileRole.user,
        nullable=False,
    )
    avatar_url: Mapped[str] = mapped_column(String(1024), default="", nullable=False)
    xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    chapters_completed: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    badges: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    titles: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        onupdate=_now,
        nullable=False,
    )


class ContentItem(Base):
    __tablename__ = "content_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    item_type: Mapped[ContentItemType] = mapped_column(
        Enum(ContentItemType, native_enum=False),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ContentItemStatus] = mapped_column(
        Enum(ContentItemStatus, native_enum=False),
        default=ContentItemStatus.pending,
        nullable=False,
    )
    reported_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        nullable=False,
    )


class SystemLog(Base):
    __tablename__ = "system_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    level: Mapped[LogLevel] = mapped_column(
        Enum(LogLevel, native_enum=False),
        default=LogLevel.info,
        nullable=False,
    )
    message: Mapped[str] = mapped_column(String(400), nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    details_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        nullable=False,
    )


class SystemSetting(Base):
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(String(400), nullable=False)
    description: Mapped[str] = mapped_column(String(400), default="", nullable=False)
    category: Mapped[str] = mapped_column(String(32), default="general", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        onupdate=_now,
        nullable=False,
    )


Index("ix_profiles_role_created", Profile.role, Profile.created_at)
Index("ix_content_items_status_created", ContentItem.status, ContentItem.created_at)
Index("ix_system_logs_level_created", SystemLog.level, SystemLog.created_at)
