import random

import pytest

from examquest.schemas.content import (
    BossDefinition,
    BossRewards,
    Chapter,
    Choice,
    MinigameReward,
    Question,
)
from examquest.services.quiz_flow import QuizAttempt, QuizPhase, base_reward_xp, reward_xp
from examquest.services.rewards import EmptyQuizError, FlowStateError


class RecordingRewards:
    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []

    def add_experience(self, amount: int) -> None:
        self.calls.append(("xp", amount))

    def add_badge(self, badge: str) -> None:
        self.calls.append(("badge", badge))

    def add_title(self, title: str) -> None:
        self.calls.append(("title", title))

    def mark_chapter_completed(self, chapter_id: str) -> None:
        self.calls.append(("complete", chapter_id))

    def unlock_boss(self, chapter_id: str) -> None:
        self.calls.append(("boss", chapter_id))


def _question(number: int) -> Question:
    return Question(
        question=f"Question {number}?",
        choices=[
            Choice(text=f"right {number}", correct=True, explanation=f"because {number}"),
            Choice(text=f"wrong {number}", explanation="no"),
            Choice(text=f"other {number}", explanation="no"),
        ],
    )


def _chapter(**kwargs) -> Chapter:
    return Chapter(
        id="life-basics",
        title="Life insurance basics",
        quiz=[_question(1), _question(2), _question(3)],
        **kwargs,
    )


def _answer(attempt: QuizAttempt, correct: bool) -> None:
    choices = attempt.current_choices
    index = next(i for i, choice in enumerate(choices) if choice.correct is correct)
    attempt.select(index)
    attempt.advance()


def test_two_of_three_does_not_complete_and_offers_retry():
    rewards = RecordingRewards()
    attempt = QuizAttempt(
        _chapter(minigame=MinigameReward(xp=150)), rewards=rewards, rng=random.Random(1)
    )

    _answer(attempt, True)
    _answer(attempt, False)
    _answer(attempt, True)

    assert attempt.phase is QuizPhase.completed
    assert attempt.outcome.final_score == 2
    assert attempt.outcome.percentage == 67
    assert not attempt.outcome.passed
    assert attempt.can_retry
    assert rewards.calls == []

    retry = attempt.retry()
    assert retry.id != attempt.id
    assert retry.phase is QuizPhase.answering
    assert attempt.outcome.final_score == 2


def test_perfect_score_completes_once_and_grants_full_reward():
    rewards = RecordingRewards()
    chapter = _chapter(minigame=MinigameReward(xp=150, badge="Life Apprentice"))
    attempt = QuizAttempt(chapter, rewards=rewards, rng=random.Random(2))

    for _ in range(3):
        _answer(attempt, True)

    assert attempt.outcome.passed
    assert attempt.outcome.xp_awarded == 150
    assert rewards.calls == [
        ("complete", "life-basics"),
        ("xp", 150),
        ("badge", "Life Apprentice"),
    ]
    assert not attempt.can_retry
    with pytest.raises(FlowStateError):
        attempt.retry()


def test_score_comes_from_per_question_tracking():
    attempt = QuizAttempt(_chapter(), rng=random.Random(3))
    _answer(attempt, False)
    _answer(attempt, True)
    _answer(attempt, True)

    assert attempt.correct_answers == [False, True, True]
    assert attempt.outcome.final_score == 2


def test_boss_chapter_unlocks_boss_instead_of_completing():
    rewards = RecordingRewards()
    boss = BossDefinition(
        name="The Tax Collector",
        quiz=[_question(9)],
        rewards=BossRewards(xp=300, badge="Tax Slayer", title="Policy Strategist"),
    )
    attempt = QuizAttempt(_chapter(boss=boss), rewards=rewards)
    for _ in range(3):
        _answer(attempt, True)

    assert attempt.outcome.boss_unlocked
    assert not attempt.outcome.chapter_completed
    assert rewards.calls == [
        ("boss", "life-basics"),
        ("xp", 300),
        ("badge", "Tax Slayer"),
        ("title", "Policy Strategist"),
    ]


def test_second_selection_on_same_question_is_ignored():
    attempt = QuizAttempt(_chapter(), rng=random.Random(4))
    choices = attempt.current_choices
    wrong = next(i for i, choice in enumerate(choices) if not choice.correct)
    right = next(i for i, choice in enumerate(choices) if choice.correct)

    assert attempt.select(wrong) is True
    assert attempt.select(right) is False
    assert attempt.last_answer_correct is False
    assert attempt.explanation == "because 1"


def test_advance_requires_an_answer():
    attempt = QuizAttempt(_chapter())
    with pytest.raises(FlowStateError):
        attempt.advance()


def test_out_of_range_choice_is_rejected():
    attempt = QuizAttempt(_chapter())
    with pytest.raises(ValueError):
        attempt.select(7)
    assert attempt.phase is QuizPhase.answering


def test_empty_quiz_cannot_start():
    with pytest.raises(EmptyQuizError):
        QuizAttempt(Chapter(id="empty", title="Empty"))


def test_reward_scaling_and_defaults():
    assert base_reward_xp(_chapter()) == 0
    assert base_reward_xp(_chapter(minigame=MinigameReward())) == 100
    assert base_reward_xp(_chapter(minigame=MinigameReward(xp=200))) == 200
    assert reward_xp(2, 3, 150) == 100
    assert reward_xp(3, 3, 150) == 150


def test_attempt_without_rewards_still_finishes():
    attempt = QuizAttempt(_chapter(minigame=MinigameReward(xp=90)))
    for _ in range(3):
        _answer(attempt, True)
    assert attempt.outcome.passed
    assert attempt.outcome.xp_awarded == 90
