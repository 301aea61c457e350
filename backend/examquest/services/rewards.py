from __future__ import annotations

from typing import Protocol


class RewardGranter(Protocol):
    """What a quiz or boss flow may do to the player's progression.

    Flows take `RewardGranter | None`; with `None` they still run to completion
    but have no side effects.
    """

    def add_experience(self, amount: int) -> None: ...

    def add_badge(self, badge: str) -> None: ...

    def add_title(self, title: str) -> None: ...

    def mark_chapter_completed(self, chapter_id: str) -> None: ...

    def unlock_boss(self, chapter_id: str) -> None: ...


class FlowStateError(RuntimeError):
    """An operation was requested in a state that does not allow it."""


class EmptyQuizError(ValueError):
    """The content has no questions to play."""


class BattleLockedError(FlowStateError):
    """An answer arrived while the previous explanation is still displayed."""
