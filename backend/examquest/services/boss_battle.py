from __future__ import annotations

import enum
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from examquest.schemas.content import BossDefinition, Choice, Question
from examquest.services.rewards import (
    BattleLockedError,
    EmptyQuizError,
    FlowStateError,
    RewardGranter,
)

logger = logging.getLogger(__name__)

DEFAULT_LIVES = 1
DEFAULT_LOCK_SECONDS = 1.8
DEFAULT_REWARD_XP = 500


class BattleStatus(enum.StrEnum):
    in_progress = "in_progress"
    won = "won"
    lost = "lost"


@dataclass(frozen=True, slots=True)
class BattleAnswer:
    correct: bool
    explanation: str


class BossBattle:
    """Boss fight over a fixed list of questions.

    Correct answers take one point of boss health, wrong ones take a life.
    After each answer the battle stays locked for `lock_seconds` so the
    explanation can be read; the next question is served once the lock ends.
    """

    def __init__(
        self,
        chapter_id: str,
        boss: BossDefinition,
        *,
        lives: int = DEFAULT_LIVES,
        lock_seconds: float = DEFAULT_LOCK_SECONDS,
        reward_xp: int = DEFAULT_REWARD_XP,
        rewards: RewardGranter | None = None,
        clock: Callable[[], float] = time.monotonic,
        battle_id: str | None = None,
    ) -> None:
        if not boss.quiz:
            raise EmptyQuizError(f"No quiz loaded for boss {boss.name}")
        if lives < 1:
            raise ValueError("A battle needs at least one life")
        self.id = battle_id or str(uuid.uuid4())
        self.chapter_id = chapter_id
        self.boss = boss
        self.max_lives = lives
        self.lock_seconds = lock_seconds
        self.reward_xp = reward_xp
        self._rewards = rewards
        self._clock = clock
        self.reward_granted = False
        self._reset()

    def _reset(self) -> None:
        self._index = 0
        self.boss_health = len(self.boss.quiz)
        self.lives_remaining = self.max_lives
        self.status = BattleStatus.in_progress
        self.last_answer: BattleAnswer | None = None
        self._locked_until: float | None = None
        self._advance_pending = False

    @property
    def question_count(self) -> int:
        return len(self.boss.quiz)

    @property
    def locked(self) -> bool:
        return self._locked_until is not None and self._clock() < self._locked_until

    def _settle(self) -> None:
        if self._locked_until is None or self.locked:
            return
        self._locked_until = None
        self.last_answer = None
        if self._advance_pending:
            self._advance_pending = False
            self._index += 1

    @property
    def current_index(self) -> int:
        self._settle()
        return self._index

    @property
    def current_question(self) -> Question | None:
        if self.status is not BattleStatus.in_progress:
            return None
        return self.boss.quiz[self.current_index]

    @property
    def current_choices(self) -> list[Choice]:
        question = self.current_question
        return list(question.choices) if question is not None else []

    def answer(self, choice_index: int) -> BattleAnswer:
        self._settle()
        if self.status is not BattleStatus.in_progress:
            raise FlowStateError("The battle is over")
        if self.locked:
            raise BattleLockedError("Wait for the explanation before answering again")

        choices = self.boss.quiz[self._index].choices
        if not 0 <= choice_index < len(choices):
            raise ValueError(f"Choice index {choice_index} out of range")
        choice = choices[choice_index]

        if choice.correct:
            self.boss_health -= 1
        else:
            self.lives_remaining -= 1
        self.last_answer = BattleAnswer(correct=choice.correct, explanation=choice.explanation)
        self._locked_until = self._clock() + self.lock_seconds

        is_last = self._index >= self.question_count - 1
        if self.lives_remaining <= 0:
            self._finish(BattleStatus.lost)
        elif self.boss_health <= 0:
            self._finish(BattleStatus.won)
        elif is_last:
            self._finish(BattleStatus.lost)
        else:
            self._advance_pending = True
        return self.last_answer

    def _finish(self, status: BattleStatus) -> None:
        self.status = status
        logger.info("Boss battle %s on chapter %s ended: %s", self.id, self.chapter_id, status)
        if status is not BattleStatus.won or self.reward_granted:
            return
        self.reward_granted = True
        if self._rewards is not None:
            self._rewards.add_experience(self.reward_xp)
            self._rewards.mark_chapter_completed(self.chapter_id)

    def restart(self) -> None:
        if self.status is BattleStatus.in_progress:
            raise FlowStateError("The battle is still in progress")
        self._reset()
