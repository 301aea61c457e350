import asyncio
from typing import Any

from examquest.schemas.content import BossDefinition, Chapter, Choice, Question
from examquest.services.game_session import GameSession, GameSessionRegistry, ProgressionTracker
from examquest.services.notifications import NotificationCenter
from examquest.services.profile_store import ProfileRecord, ProfileStoreError


class FakeProfileStore:
    def __init__(
        self,
        record: ProfileRecord | None = None,
        *,
        fail_updates: bool = False,
        fail_fetches: int = 0,
    ) -> None:
        self.record = record
        self.fail_updates = fail_updates
        self.fail_fetches = fail_fetches
        self.fetches = 0
        self.updates: list[dict[str, Any]] = []

    async def fetch(self, user_id: str) -> ProfileRecord | None:
        self.fetches += 1
        if self.fetches <= self.fail_fetches:
            raise ProfileStoreError("store unavailable")
        return self.record

    async def update(self, user_id: str, fields: dict[str, Any]) -> None:
        if self.fail_updates:
            raise ProfileStoreError("store unavailable")
        self.updates.append(dict(fields))

    async def delete(self, user_id: str) -> bool:
        deleted, self.record = self.record is not None, None
        return deleted


def _tracker(store: FakeProfileStore, **kwargs) -> ProgressionTracker:
    return ProgressionTracker("user-1", store, debounce_seconds=0.01, **kwargs)


def test_load_applies_profile_without_writing_back():
    async def run() -> None:
        store = FakeProfileStore(ProfileRecord(user_id="user-1", username="p1", xp=250, badges=["A"]))
        tracker = _tracker(store)
        await tracker.load()
        await asyncio.sleep(0.05)
        await tracker.wait_for_writes()

        assert tracker.state.xp == 250
        assert tracker.state.level == 1
        assert tracker.state.badges == ("A",)
        assert store.updates == []
        assert not tracker.persistence_pending

    asyncio.run(run())


def test_load_ignored_after_close():
    async def run() -> None:
        store = FakeProfileStore(ProfileRecord(user_id="user-1", username="p1", xp=900))
        tracker = _tracker(store)
        await tracker.close()
        await tracker.load()
        assert tracker.state.xp == 0
        assert not tracker.loaded

    asyncio.run(run())


def test_chapter_completion_is_idempotent_and_written_once():
    async def run() -> None:
        store = FakeProfileStore(ProfileRecord(user_id="user-1", username="p1"))
        tracker = _tracker(store)
        await tracker.load()

        tracker.mark_chapter_completed("life-basics")
        tracker.mark_chapter_completed("life-basics")
        await tracker.wait_for_writes()

        assert tracker.state.completed_chapters == ("life-basics",)
        assert store.updates == [{"chapters_completed": ["life-basics"]}]

    asyncio.run(run())


def test_debounced_write_reads_latest_state():
    async def run() -> None:
        store = FakeProfileStore(ProfileRecord(user_id="user-1", username="p1"))
        tracker = _tracker(store)
        await tracker.load()

        tracker.add_experience(100)
        tracker.add_experience(200)
        tracker.add_badge("Tax Slayer")
        assert tracker.persistence_pending

        await asyncio.sleep(0.05)
        await tracker.wait_for_writes()

        assert store.updates == [
            {
                "xp": 300,
                "chapters_completed": [],
                "badges": ["Tax Slayer"],
                "titles": [],
            }
        ]

    asyncio.run(run())


def test_duplicate_badge_schedules_no_write():
    async def run() -> None:
        store = FakeProfileStore(ProfileRecord(user_id="user-1", username="p1", badges=["A"]))
        tracker = _tracker(store)
        await tracker.load()

        tracker.add_badge("A")
        assert not tracker.persistence_pending
        await asyncio.sleep(0.03)
        assert store.updates == []

    asyncio.run(run())


def test_persistence_failure_keeps_state_and_warns():
    async def run() -> None:
        store = FakeProfileStore(ProfileRecord(user_id="user-1", username="p1"), fail_updates=True)
        notifications = NotificationCenter()
        tracker = _tracker(store, notifications=notifications)
        await tracker.load()

        tracker.add_experience(400)
        tracker.mark_chapter_completed("life-basics")
        await tracker.flush()

        assert tracker.state.xp == 400
        assert tracker.state.completed_chapters == ("life-basics",)
        warnings = [item for item in notifications.drain() if item.level == "warning"]
        assert warnings
        assert warnings[0].message == "Your progress could not be saved."

    asyncio.run(run())


def test_close_flushes_pending_snapshot():
    async def run() -> None:
        store = FakeProfileStore(ProfileRecord(user_id="user-1", username="p1"))
        tracker = ProgressionTracker("user-1", store, debounce_seconds=60)
        await tracker.load()

        tracker.add_title("Policy Strategist")
        await tracker.close()

        assert store.updates[-1]["titles"] == ["Policy Strategist"]

    asyncio.run(run())


def test_game_session_notifies_rewards():
    async def run() -> None:
        store = FakeProfileStore(ProfileRecord(user_id="user-1", username="p1"))
        notifications = NotificationCenter()
        tracker = _tracker(store, notifications=notifications)
        session = GameSession("user-1", tracker, notifications)
        await tracker.load()

        session.add_experience(150)
        session.add_badge("Life Apprentice")
        session.add_badge("Life Apprentice")
        session.mark_chapter_completed("life-basics")
        session.unlock_boss("life-taxation")
        await session.close()

        messages = [item.message for item in notifications.drain()]
        assert messages == [
            "+150 XP earned!",
            "Badge unlocked: Life Apprentice",
            "Chapter completed!",
            "Boss unlocked! Get ready to fight!",
        ]
        assert any(update.get("xp") == 150 for update in store.updates)

    asyncio.run(run())


def _stored_profile() -> ProfileRecord:
    return ProfileRecord(
        user_id="user-1",
        username="p1",
        xp=5000,
        badges=["A"],
        chapters_completed=["c1", "c2"],
    )


def test_failed_load_never_overwrites_stored_profile():
    async def run() -> None:
        store = FakeProfileStore(_stored_profile(), fail_fetches=1)
        notifications = NotificationCenter()
        tracker = _tracker(store, notifications=notifications)
        await tracker.load()
        assert not tracker.loaded

        tracker.add_badge("B")
        tracker.mark_chapter_completed("c3")
        await tracker.flush()

        assert store.updates == []
        assert any(item.level == "warning" for item in notifications.drain())

    asyncio.run(run())


def test_registry_retries_failed_load_on_next_get(settings, catalog):
    async def run() -> None:
        store = FakeProfileStore(_stored_profile(), fail_fetches=1)
        registry = GameSessionRegistry(store, settings, catalog)

        first = await registry.get("user-1")
        assert not first.progression.loaded
        assert first.progression.state.xp == 0

        second = await registry.get("user-1")
        assert second is first
        assert second.progression.loaded
        assert second.progression.state.xp == 5000
        assert second.progression.state.unlocked_tiers == (1, 2)
        assert store.fetches == 2
        await registry.close()

    asyncio.run(run())


def test_registry_session_hears_about_failed_saves(settings, catalog):
    async def run() -> None:
        store = FakeProfileStore(ProfileRecord(user_id="user-1", username="p1"), fail_updates=True)
        registry = GameSessionRegistry(store, settings, catalog)
        session = await registry.get("user-1")

        session.add_badge("Life Apprentice")
        await session.progression.flush()

        messages = [item.message for item in session.notifications.drain()]
        assert "Your progress could not be saved." in messages
        await registry.close()

    asyncio.run(run())


class GatedProfileStore(FakeProfileStore):
    def __init__(self, slow_user_id: str) -> None:
        super().__init__(ProfileRecord(user_id="any", username="p1"))
        self.slow_user_id = slow_user_id
        self.release = asyncio.Event()

    async def fetch(self, user_id: str) -> ProfileRecord | None:
        if user_id == self.slow_user_id:
            await self.release.wait()
        return await super().fetch(user_id)


def test_slow_profile_load_does_not_block_other_users(settings, catalog):
    async def run() -> None:
        store = GatedProfileStore("slow-user")
        registry = GameSessionRegistry(store, settings, catalog)

        slow = asyncio.create_task(registry.get("slow-user"))
        await asyncio.sleep(0)
        fast = await asyncio.wait_for(registry.get("fast-user"), timeout=1)
        assert fast.progression.loaded
        assert not slow.done()

        store.release.set()
        assert (await slow).progression.loaded
        await registry.close()

    asyncio.run(run())


def test_session_keeps_only_recent_quiz_attempts_and_battles():
    question = Question(
        question="Is a premium paid to the insurer?",
        choices=[Choice(text="Yes", correct=True), Choice(text="No")],
    )
    chapter = Chapter(
        id="life-taxation",
        title="Life insurance taxation",
        quiz=[question],
        boss=BossDefinition(name="The Tax Collector", quiz=[question]),
    )
    notifications = NotificationCenter()
    tracker = _tracker(FakeProfileStore(), notifications=notifications)
    session = GameSession("user-1", tracker, notifications, max_flows=3)
    session.unlock_boss(chapter.id)

    attempts = [session.start_quiz(chapter) for _ in range(5)]
    battles = [session.start_boss_battle(chapter) for _ in range(5)]

    assert list(session.quiz_attempts) == [attempt.id for attempt in attempts[2:]]
    assert list(session.boss_battles) == [battle.id for battle in battles[2:]]
