from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from examquest.core.config import Settings
from examquest.schemas.content import Chapter
from examquest.services.boss_battle import BossBattle
from examquest.services.catalog import ContentCatalog
from examquest.services.debounce import Debouncer
from examquest.services.notifications import NotificationCenter
from examquest.services.profile_store import ProfileStore, ProfileStoreError
from examquest.services.progression import (
    Action,
    AddBadge,
    AddExperience,
    AddTitle,
    INITIAL_STATE,
    MarkChapterCompleted,
    ProgressionRules,
    ProgressionState,
    ResetProgress,
    SetUserData,
    reduce,
    validate_xp_amount,
)
from examquest.services.quiz_flow import QuizAttempt
from examquest.services.rewards import FlowStateError

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Your progress could not be saved."
MAX_TRACKED_FLOWS = 20


class ProgressionTracker:
    """Owns one user's progression state and keeps the profile store in sync.

    Chapter completions are written right away. XP, badges and titles are
    coalesced by a trailing-edge debounce that writes the whole snapshot as
    it is when the write happens.
    """

    def __init__(
        self,
        user_id: str,
        store: ProfileStore,
        *,
        rules: ProgressionRules = ProgressionRules(),
        debounce_seconds: float = 1.0,
        notifications: NotificationCenter | None = None,
    ) -> None:
        self.user_id = user_id
        self._store = store
        self._rules = rules
        self._state: ProgressionState = INITIAL_STATE
        self._notifications = notifications if notifications is not None else NotificationCenter()
        self._debouncer = Debouncer(self._persist_snapshot, debounce_seconds)
        self._writes: set[asyncio.Task[None]] = set()
        self._closed = False
        self.loading = False
        self.loaded = False

    @property
    def state(self) -> ProgressionState:
        return self._state

    @property
    def rules(self) -> ProgressionRules:
        return self._rules

    @property
    def persistence_pending(self) -> bool:
        return self._debouncer.pending or self._debouncer.running or bool(self._writes)

    def dispatch(self, action: Action) -> ProgressionState:
        self._state = reduce(self._state, action, self._rules)
        return self._state

    async def load(self) -> None:
        self.loading = True
        try:
            record = await self._store.fetch(self.user_id)
        except ProfileStoreError:
            logger.exception("Could not load progression for user %s", self.user_id)
            return
        finally:
            self.loading = False

        if self._closed:
            logger.debug("Session for %s closed before its profile loaded", self.user_id)
            return
        self.loaded = True
        if record is None:
            return
        self.dispatch(
            SetUserData(
                xp=record.xp,
                completed_chapters=tuple(record.chapters_completed),
                badges=tuple(record.badges),
                titles=tuple(record.titles),
            )
        )

    def add_experience(self, amount: int) -> ProgressionState:
        validate_xp_amount(amount)
        return self._apply_batched(AddExperience(amount))

    def add_badge(self, badge: str) -> ProgressionState:
        return self._apply_batched(AddBadge(badge))

    def add_title(self, title: str) -> ProgressionState:
        return self._apply_batched(AddTitle(title))

    def mark_chapter_completed(self, chapter_id: str) -> ProgressionState:
        previous = self._state
        state = self.dispatch(MarkChapterCompleted(chapter_id))
        if state is not previous:
            self._spawn_write(
                self._persist_fields({"chapters_completed": list(state.completed_chapters)})
            )
        return state

    def reset(self) -> None:
        self._debouncer.cancel()
        self.dispatch(ResetProgress())

    def _apply_batched(self, action: Action) -> ProgressionState:
        previous = self._state
        state = self.dispatch(action)
        if state != previous:
            self._debouncer.schedule()
        return state

    def _spawn_write(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _persist_snapshot(self) -> None:
        state = self._state
        await self._persist_fields(
            {
                "xp": state.xp,
                "chapters_completed": list(state.completed_chapters),
                "badges": list(state.badges),
                "titles": list(state.titles),
            }
        )

    async def _persist_fields(self, fields: dict[str, Any]) -> None:
        if not self.loaded:
            # Writing unseeded state would clobber the stored profile.
            logger.warning("Not saving progression for user %s: profile never loaded", self.user_id)
            self._notifications.warning(SAVE_FAILED_MESSAGE)
            return
        try:
            await self._store.update(self.user_id, fields)
        except ProfileStoreError:
            logger.exception("Could not save progression for user %s", self.user_id)
            self._notifications.warning(SAVE_FAILED_MESSAGE)

    async def wait_for_writes(self) -> None:
        await self._debouncer.wait()
        while self._writes:
            await asyncio.gather(*list(self._writes))

    async def flush(self) -> None:
        await self._debouncer.flush()
        await self.wait_for_writes()

    async def close(self, *, flush: bool = True) -> None:
        self._closed = True
        if flush:
            await self.flush()
        else:
            self._debouncer.cancel()
            await self.wait_for_writes()


class GameSession:
    """Everything one signed-in player has in flight.

    Implements the reward capability handed to quiz and boss flows.
    """

    def __init__(
        self,
        user_id: str,
        progression: ProgressionTracker,
        notifications: NotificationCenter,
        *,
        boss_lives: int = 1,
        boss_lock_seconds: float = 1.8,
        boss_reward_xp: int = 500,
        minigame_default_xp: int = 100,
        max_flows: int = MAX_TRACKED_FLOWS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.user_id = user_id
        self.progression = progression
        self.notifications = notifications
        self.unlocked_bosses: set[str] = set()
        self.quiz_attempts: dict[str, QuizAttempt] = {}
        self.boss_battles: dict[str, BossBattle] = {}
        self._boss_lives = boss_lives
        self._boss_lock_seconds = boss_lock_seconds
        self._boss_reward_xp = boss_reward_xp
        self._minigame_default_xp = minigame_default_xp
        self._max_flows = max_flows
        self._clock = clock

    @property
    def minigame_default_xp(self) -> int:
        return self._minigame_default_xp

    def add_experience(self, amount: int) -> None:
        self.progression.add_experience(amount)
        if amount:
            self.notifications.success(f"+{amount} XP earned!")

    def add_badge(self, badge: str) -> None:
        if badge not in self.progression.state.badges:
            self.progression.add_badge(badge)
            self.notifications.success(f"Badge unlocked: {badge}")

    def add_title(self, title: str) -> None:
        if title not in self.progression.state.titles:
            self.progression.add_title(title)
            self.notifications.success(f"Title unlocked: {title}")

    def mark_chapter_completed(self, chapter_id: str) -> None:
        if chapter_id not in self.progression.state.completed_chapters:
            self.progression.mark_chapter_completed(chapter_id)
            self.notifications.success("Chapter completed!")

    def unlock_boss(self, chapter_id: str) -> None:
        if chapter_id not in self.unlocked_bosses:
            self.unlocked_bosses.add(chapter_id)
            self.notifications.success("Boss unlocked! Get ready to fight!")

    def tier_unlocked(self, tier: int) -> bool:
        return tier in self.progression.state.unlocked_tiers

    def boss_available(self, chapter: Chapter) -> bool:
        return chapter.boss is not None and (
            chapter.id in self.unlocked_bosses
            or chapter.id in self.progression.state.completed_chapters
        )

    def _remember(self, flows: dict[str, Any], flow_id: str, flow: Any) -> None:
        flows[flow_id] = flow
        # Oldest flows go first, like a bounded deque.
        while len(flows) > self._max_flows:
            del flows[next(iter(flows))]

    def start_quiz(self, chapter: Chapter) -> QuizAttempt:
        attempt = QuizAttempt(
            chapter,
            rewards=self,
            minigame_default_xp=self._minigame_default_xp,
        )
        self._remember(self.quiz_attempts, attempt.id, attempt)
        return attempt

    def retry_quiz(self, attempt: QuizAttempt) -> QuizAttempt:
        retry = attempt.retry()
        self._remember(self.quiz_attempts, retry.id, retry)
        return retry

    def start_boss_battle(self, chapter: Chapter) -> BossBattle:
        if chapter.boss is None:
            raise FlowStateError(f"Chapter {chapter.id} has no boss")
        if not self.boss_available(chapter):
            raise FlowStateError("Score 100% on the chapter quiz to unlock its boss")
        battle = BossBattle(
            chapter.id,
            chapter.boss,
            lives=self._boss_lives,
            lock_seconds=self._boss_lock_seconds,
            reward_xp=self._boss_reward_xp,
            rewards=self,
            clock=self._clock,
        )
        self._remember(self.boss_battles, battle.id, battle)
        return battle

    async def close(self, *, flush: bool = True) -> None:
        await self.progression.close(flush=flush)
        self.progression.reset()
        self.quiz_attempts.clear()
        self.boss_battles.clear()
        self.unlocked_bosses.clear()


class GameSessionRegistry:
    """Holds the live `GameSession` of every signed-in user."""

    def __init__(
        self,
        store: ProfileStore,
        settings: Settings,
        catalog: ContentCatalog,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._settings = settings
        self._rules = ProgressionRules(
            xp_per_level=settings.xp_per_level,
            tier_level_step=settings.tier_level_step,
            max_tier=catalog.max_tier,
        )
        self._clock = clock
        self._sessions: dict[str, GameSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def rules(self) -> ProgressionRules:
        return self._rules

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def peek(self, user_id: str) -> GameSession | None:
        return self._sessions.get(user_id)

    def _build(self, user_id: str) -> GameSession:
        settings = self._settings
        notifications = NotificationCenter()
        progression = ProgressionTracker(
            user_id,
            self._store,
            rules=self._rules,
            debounce_seconds=settings.persistence_debounce_seconds,
            notifications=notifications,
        )
        return GameSession(
            user_id,
            progression,
            notifications,
            boss_lives=settings.boss_lives,
            boss_lock_seconds=settings.boss_lock_seconds,
            boss_reward_xp=settings.boss_reward_xp,
            minigame_default_xp=settings.minigame_default_xp,
            clock=self._clock,
        )

    async def get(self, user_id: str) -> GameSession:
        session = self._sessions.get(user_id)
        if session is not None and session.progression.loaded:
            return session

        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = self._build(user_id)
                self._sessions[user_id] = session
                logger.debug("Started game session for %s", user_id)
            if not session.progression.loaded:
                # Retried on every request until a fetch succeeds.
                await session.progression.load()
            return session

    async def end(self, user_id: str, *, flush: bool = True) -> None:
        session = self._sessions.pop(user_id, None)
        self._locks.pop(user_id, None)
        if session is not None:
            await session.close(flush=flush)
            logger.debug("Ended game session for %s", user_id)

    async def close(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        self._locks.clear()
        for session in sessions:
            await session.close(flush=True)
