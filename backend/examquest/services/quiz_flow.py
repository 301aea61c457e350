"""Chapter quiz attempts.

An attempt walks the chapter's questions in order:

    answering(i) -> showing_explanation(i) -> answering(i + 1) | completed

Only a perfect attempt passes; it completes the chapter, or unlocks its boss
when the chapter has one.
"""

from __future__ import annotations

import enum
import logging
import random
import uuid
from dataclasses import dataclass

from examquest.schemas.content import Chapter, Choice, Question
from examquest.services.rewards import EmptyQuizError, FlowStateError, RewardGranter

logger = logging.getLogger(__name__)

DEFAULT_MINIGAME_XP = 100


class QuizPhase(enum.StrEnum):
    answering = "answering"
    showing_explanation = "showing_explanation"
    completed = "completed"


@dataclass(frozen=True, slots=True)
class QuizOutcome:
    final_score: int
    question_count: int
    passed: bool
    xp_awarded: int = 0
    badge: str | None = None
    title: str | None = None
    chapter_completed: bool = False
    boss_unlocked: bool = False

    @property
    def percentage(self) -> int:
        return round(self.final_score / self.question_count * 100)


def base_reward_xp(chapter: Chapter, minigame_default_xp: int = DEFAULT_MINIGAME_XP) -> int:
    if chapter.boss is not None:
        return chapter.boss.rewards.xp
    if chapter.minigame is not None:
        if chapter.minigame.xp is None:
            return minigame_default_xp
        return chapter.minigame.xp
    return 0


def reward_xp(final_score: int, question_count: int, base_xp: int) -> int:
    return (final_score * base_xp) // question_count


class QuizAttempt:
    def __init__(
        self,
        chapter: Chapter,
        *,
        rewards: RewardGranter | None = None,
        rng: random.Random | None = None,
        minigame_default_xp: int = DEFAULT_MINIGAME_XP,
        attempt_id: str | None = None,
    ) -> None:
        if not chapter.quiz:
            raise EmptyQuizError(f"No quiz loaded for chapter {chapter.id}")
        self.id = attempt_id or str(uuid.uuid4())
        self.chapter = chapter
        self._rewards = rewards
        self._rng = rng or random.Random()
        self._minigame_default_xp = minigame_default_xp

        self.phase = QuizPhase.answering
        self.question_index = 0
        self.correct_answers = [False] * len(chapter.quiz)
        self.selected_choice: int | None = None
        self.last_answer_correct: bool | None = None
        self.outcome: QuizOutcome | None = None
        self.choice_orders = [self._shuffled_order(question) for question in chapter.quiz]

    def _shuffled_order(self, question: Question) -> list[int]:
        order = list(range(len(question.choices)))
        self._rng.shuffle(order)
        return order

    @property
    def chapter_id(self) -> str:
        return self.chapter.id

    @property
    def question_count(self) -> int:
        return len(self.chapter.quiz)

    @property
    def current_question(self) -> Question:
        return self.chapter.quiz[self.question_index]

    @property
    def current_choices(self) -> list[Choice]:
        question = self.current_question
        return [question.choices[i] for i in self.choice_orders[self.question_index]]

    @property
    def running_score(self) -> int:
        return sum(self.correct_answers)

    @property
    def explanation(self) -> str | None:
        if self.phase is not QuizPhase.showing_explanation:
            return None
        correct = next((choice for choice in self.current_choices if choice.correct), None)
        return correct.explanation if correct is not None else None

    def select(self, choice_index: int) -> bool:
        """Record an answer for the current question.

        Returns False without changing anything when the question was already
        answered or the attempt is over.
        """
        if self.phase is not QuizPhase.answering:
            return False
        choices = self.current_choices
        if not 0 <= choice_index < len(choices):
            raise ValueError(f"Choice index {choice_index} out of range")

        is_correct = choices[choice_index].correct
        self.correct_answers[self.question_index] = is_correct
        self.selected_choice = choice_index
        self.last_answer_correct = is_correct
        self.phase = QuizPhase.showing_explanation
        return True

    def advance(self) -> QuizPhase:
        if self.phase is not QuizPhase.showing_explanation:
            raise FlowStateError("Answer the current question before moving on")

        if self.question_index < self.question_count - 1:
            self.question_index += 1
            self.selected_choice = None
            self.last_answer_correct = None
            self.phase = QuizPhase.answering
            return self.phase

        self._complete()
        return self.phase

    def _complete(self) -> None:
        final_score = sum(self.correct_answers)
        question_count = self.question_count
        self.phase = QuizPhase.completed

        if final_score < question_count:
            logger.info(
                "Chapter %s attempt %s failed with %d/%d",
                self.chapter.id,
                self.id,
                final_score,
                question_count,
            )
            self.outcome = QuizOutcome(
                final_score=final_score,
                question_count=question_count,
                passed=False,
            )
            return

        chapter = self.chapter
        xp_awarded = reward_xp(
            final_score,
            question_count,
            base_reward_xp(chapter, self._minigame_default_xp),
        )
        badge: str | None = None
        title: str | None = None
        if chapter.boss is not None:
            badge = chapter.boss.rewards.badge
            title = chapter.boss.rewards.title
        elif chapter.minigame is not None:
            badge = chapter.minigame.badge
            title = chapter.minigame.title

        self.outcome = QuizOutcome(
            final_score=final_score,
            question_count=question_count,
            passed=True,
            xp_awarded=xp_awarded,
            badge=badge,
            title=title,
            chapter_completed=chapter.boss is None,
            boss_unlocked=chapter.boss is not None,
        )
        logger.info("Chapter %s attempt %s passed", chapter.id, self.id)

        rewards = self._rewards
        if rewards is None:
            return
        if chapter.boss is None:
            rewards.mark_chapter_completed(chapter.id)
        else:
            rewards.unlock_boss(chapter.id)
        if xp_awarded:
            rewards.add_experience(xp_awarded)
        if badge:
            rewards.add_badge(badge)
        if title:
            rewards.add_title(title)

    @property
    def can_retry(self) -> bool:
        return self.outcome is not None and not self.outcome.passed

    def retry(self) -> QuizAttempt:
        """Start a fresh attempt on the same chapter; this one stays as it was."""
        if not self.can_retry:
            raise FlowStateError("Only a failed, completed attempt can be retried")
        return QuizAttempt(
            self.chapter,
            rewards=self._rewards,
            rng=self._rng,
            minigame_default_xp=self._minigame_default_xp,
        )
