from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from examquest.db import models  # noqa: F401
from examquest.db.base import Base
from examquest.db.models import SystemSetting

# (key, value, description, category)
DEFAULT_SYSTEM_SETTINGS: list[tuple[str, str, str, str]] = [
    ("site_name", "ExamQuest", "Site name shown in the browser and in emails", "general"),
    ("maintenance_mode", "false", "Enable maintenance mode (true/false)", "system"),
    ("smtp_host", "smtp.example.com", "SMTP server used to send emails", "email"),
    ("smtp_port", "587", "SMTP port", "email"),
    ("smtp_user", "user@example.com", "SMTP user", "email"),
    ("smtp_password", "********", "SMTP password (masked)", "email"),
    ("max_login_attempts", "5", "Maximum login attempts before lockout", "security"),
    ("session_timeout", "60", "Session expiry delay in minutes", "security"),
    ("backup_frequency", "daily", "Automatic backup frequency (daily, weekly, monthly)", "backup"),
    ("backup_retention", "30", "Number of days backups are kept", "backup"),
]


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    async with session_maker() as db:
        existing = set(await db.scalars(select(SystemSetting.key)))
        for key, value, description, category in DEFAULT_SYSTEM_SETTINGS:
            if key in existing:
                continue
            db.add(
                SystemSetting(
                    key=key,
                    value=value,
                    description=description,
                    category=category,
                )
            )
        await db.commit()
