from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

XP_BUCKETS: list[tuple[str, int | None]] = [
    ("0-100", 100),
    ("101-500", 500),
    ("501-1000", 1000),
    ("1000+", None),
]
TOP_COMPLETION_LIMIT = 10


class ProfileLike(Protocol):
    username: str
    xp: int
    chapters_completed: list[str]
    created_at: datetime


def xp_bucket(xp: int) -> str:
    for name, upper in XP_BUCKETS[:-1]:
        if xp <= upper:
            return name
    return XP_BUCKETS[-1][0]


def xp_distribution(profiles: Iterable[ProfileLike]) -> list[tuple[str, int]]:
    counts = Counter(xp_bucket(profile.xp or 0) for profile in profiles)
    return [(name, counts.get(name, 0)) for name, _ in XP_BUCKETS]


def chapter_completion(
    profiles: Iterable[ProfileLike],
    limit: int = TOP_COMPLETION_LIMIT,
) -> list[tuple[str, int]]:
    """Completed chapter count per user, most active first."""
    rows = [(profile.username, len(profile.chapters_completed or [])) for profile in profiles]
    rows.sort(key=lambda row: (-row[1], row[0]))
    return rows[:limit]


def user_growth(profiles: Iterable[ProfileLike]) -> list[tuple[str, int]]:
    """Running total of sign-ups, one point per day with at least one sign-up."""
    per_day = Counter(profile.created_at.date().isoformat() for profile in profiles)
    total = 0
    points: list[tuple[str, int]] = []
    for day in sorted(per_day):
        total += per_day[day]
        points.append((day, total))
    return points
