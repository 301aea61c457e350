from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from examquest.db.models import LogLevel, SystemLog


def record_system_log(
    db: AsyncSession,
    *,
    message: str,
    source: str,
    level: LogLevel = LogLevel.info,
    user_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> SystemLog:
    """Stage a system log row; the caller's commit persists it."""
    entry = SystemLog(
        level=level,
        message=message,
        source=source,
        user_id=user_id,
        details_json=details or {},
    )
    db.add(entry)
    return entry
