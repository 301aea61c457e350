from typing import Literal

from pydantic import BaseModel, Field

from examquest.schemas.progression import NotificationRead


class BossSummary(BaseModel):
    name: str
    description: str
    difficulty: int
    reward_xp: int
    badge: str | None
    title: str | None
    question_count: int


class ChapterSummary(BaseModel):
    id: str
    tier: int
    title: str
    summary: str
    question_count: int
    has_boss: bool
    has_minigame: bool
    locked: bool
    completed: bool
    boss_unlocked: bool


class ChapterDetail(ChapterSummary):
    boss: BossSummary | None = None
    minigame_xp: int | None = None


class TierRead(BaseModel):
    id: int
    name: str
    unlock_level: int
    unlocked: bool


class CatalogRead(BaseModel):
    tiers: list[TierRead]
    chapters: list[ChapterSummary]


class ChoiceRead(BaseModel):
    index: int
    text: str
    correct: bool | None = None
    explanation: str | None = None


class QuestionRead(BaseModel):
    index: int
    question: str
    choices: list[ChoiceRead]


class AnswerRequest(BaseModel):
    choice_index: int = Field(ge=0)


class QuizOutcomeRead(BaseModel):
    final_score: int
    question_count: int
    percentage: int
    passed: bool
    xp_awarded: int
    badge: str | None
    title: str | None
    chapter_completed: bool
    boss_unlocked: bool


class QuizAttemptRead(BaseModel):
    id: str
    chapter_id: str
    phase: Literal["answering", "showing_explanation", "completed"]
    question_index: int
    question_count: int
    running_score: int
    question: QuestionRead | None = None
    selected_choice: int | None = None
    last_answer_correct: bool | None = None
    explanation: str | None = None
    outcome: QuizOutcomeRead | None = None
    can_retry: bool = False
    notifications: list[NotificationRead] = Field(default_factory=list)


class BattleAnswerRead(BaseModel):
    correct: bool
    explanation: str


class BossBattleRead(BaseModel):
    id: str
    chapter_id: str
    boss_name: str
    status: Literal["in_progress", "won", "lost"]
    current_index: int
    question_count: int
    boss_health: int
    lives_remaining: int
    locked: bool
    question: QuestionRead | None = None
    last_answer: BattleAnswerRead | None = None
    reward_granted: bool
    notifications: list[NotificationRead] = Field(default_factory=list)
