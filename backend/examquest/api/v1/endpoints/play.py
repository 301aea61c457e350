from fastapi import APIRouter, HTTPException, status

from examquest.api.deps import Catalog, CurrentGame
from examquest.schemas.content import Chapter, Choice
from examquest.schemas.play import (
    AnswerRequest,
    BattleAnswerRead,
    BossBattleRead,
    BossSummary,
    CatalogRead,
    ChapterDetail,
    ChapterSummary,
    ChoiceRead,
    QuestionRead,
    QuizAttemptRead,
    QuizOutcomeRead,
    TierRead,
)
from examquest.schemas.progression import NotificationRead
from examquest.services.boss_battle import BattleStatus, BossBattle
from examquest.services.catalog import ContentCatalog
from examquest.services.game_session import GameSession
from examquest.services.progression import tier_threshold
from examquest.services.quiz_flow import QuizAttempt, QuizPhase, base_reward_xp
from examquest.services.rewards import BattleLockedError, EmptyQuizError, FlowStateError

router = APIRouter(tags=["play"])


def _chapter_summary(chapter: Chapter, game: GameSession) -> ChapterSummary:
    return ChapterSummary(
        id=chapter.id,
        tier=chapter.tier,
        title=chapter.title,
        summary=chapter.summary,
        question_count=len(chapter.quiz),
        has_boss=chapter.boss is not None,
        has_minigame=chapter.minigame is not None,
        locked=not game.tier_unlocked(chapter.tier),
        completed=chapter.id in game.progression.state.completed_chapters,
        boss_unlocked=game.boss_available(chapter),
    )


def _choice_reads(choices: list[Choice], *, reveal: bool) -> list[ChoiceRead]:
    return [
        ChoiceRead(
            index=index,
            text=choice.text,
            correct=choice.correct if reveal else None,
            explanation=choice.explanation if reveal else None,
        )
        for index, choice in enumerate(choices)
    ]


def _drain(game: GameSession) -> list[NotificationRead]:
    return [NotificationRead.model_validate(item) for item in game.notifications.drain()]


def _attempt_read(attempt: QuizAttempt, game: GameSession) -> QuizAttemptRead:
    question = None
    if attempt.phase is not QuizPhase.completed:
        question = QuestionRead(
            index=attempt.question_index,
            question=attempt.current_question.question,
            choices=_choice_reads(
                attempt.current_choices,
                reveal=attempt.phase is QuizPhase.showing_explanation,
            ),
        )
    outcome = None
    if attempt.outcome is not None:
        result = attempt.outcome
        outcome = QuizOutcomeRead(
            final_score=result.final_score,
            question_count=result.question_count,
            percentage=result.percentage,
            passed=result.passed,
            xp_awarded=result.xp_awarded,
            badge=result.badge,
            title=result.title,
            chapter_completed=result.chapter_completed,
            boss_unlocked=result.boss_unlocked,
        )
    return QuizAttemptRead(
        id=attempt.id,
        chapter_id=attempt.chapter_id,
        phase=attempt.phase.value,
        question_index=attempt.question_index,
        question_count=attempt.question_count,
        running_score=attempt.running_score,
        question=question,
        selected_choice=attempt.selected_choice,
        last_answer_correct=attempt.last_answer_correct,
        explanation=attempt.explanation,
        outcome=outcome,
        can_retry=attempt.can_retry,
        notifications=_drain(game),
    )


def _battle_read(battle: BossBattle, game: GameSession) -> BossBattleRead:
    question = None
    current = battle.current_question
    if current is not None:
        question = QuestionRead(
            index=battle.current_index,
            question=current.question,
            choices=_choice_reads(battle.current_choices, reveal=False),
        )
    last_answer = None
    if battle.last_answer is not None:
        last_answer = BattleAnswerRead(
            correct=battle.last_answer.correct,
            explanation=battle.last_answer.explanation,
        )
    return BossBattleRead(
        id=battle.id,
        chapter_id=battle.chapter_id,
        boss_name=battle.boss.name,
        status=battle.status.value,
        current_index=battle.current_index,
        question_count=battle.question_count,
        boss_health=battle.boss_health,
        lives_remaining=battle.lives_remaining,
        locked=battle.locked,
        question=question,
        last_answer=last_answer,
        reward_granted=battle.reward_granted,
        notifications=_drain(game),
    )


def _get_chapter(chapter_id: str, catalog: ContentCatalog) -> Chapter:
    chapter = catalog.get(chapter_id)
    if chapter is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chapter not found")
    return chapter


def _get_playable_chapter(chapter_id: str, catalog: ContentCatalog, game: GameSession) -> Chapter:
    chapter = _get_chapter(chapter_id, catalog)
    if not game.tier_unlocked(chapter.tier):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tier locked")
    return chapter


def _get_attempt(attempt_id: str, game: GameSession) -> QuizAttempt:
    attempt = game.quiz_attempts.get(attempt_id)
    if attempt is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quiz attempt not found")
    return attempt


def _get_battle(battle_id: str, game: GameSession) -> BossBattle:
    battle = game.boss_battles.get(battle_id)
    if battle is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Boss battle not found")
    return battle


@router.get("/chapters", response_model=CatalogRead)
async def list_chapters(game: CurrentGame, catalog: Catalog) -> CatalogRead:
    step = game.progression.rules.tier_level_step
    return CatalogRead(
        tiers=[
            TierRead(
                id=tier.id,
                name=tier.name,
                unlock_level=tier_threshold(tier.id, step),
                unlocked=game.tier_unlocked(tier.id),
            )
            for tier in catalog.tiers
        ],
        chapters=[_chapter_summary(chapter, game) for chapter in catalog.chapters],
    )


@router.get("/chapters/{chapter_id}", response_model=ChapterDetail)
async def get_chapter(chapter_id: str, game: CurrentGame, catalog: Catalog) -> ChapterDetail:
    chapter = _get_chapter(chapter_id, catalog)
    summary = _chapter_summary(chapter, game)
    boss = None
    if chapter.boss is not None:
        boss = BossSummary(
            name=chapter.boss.name,
            description=chapter.boss.description,
            difficulty=chapter.boss.difficulty,
            reward_xp=chapter.boss.rewards.xp,
            badge=chapter.boss.rewards.badge,
            title=chapter.boss.rewards.title,
            question_count=len(chapter.boss.quiz),
        )
    minigame_xp = None
    if chapter.minigame is not None:
        minigame_xp = base_reward_xp(chapter, game.minigame_default_xp)
    return ChapterDetail(**summary.model_dump(), boss=boss, minigame_xp=minigame_xp)


@router.post(
    "/chapters/{chapter_id}/attempts",
    response_model=QuizAttemptRead,
    status_code=status.HTTP_201_CREATED,
)
async def start_quiz_attempt(
    chapter_id: str,
    game: CurrentGame,
    catalog: Catalog,
) -> QuizAttemptRead:
    chapter = _get_playable_chapter(chapter_id, catalog, game)
    try:
        attempt = game.start_quiz(chapter)
    except EmptyQuizError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No quiz loaded for this chapter",
        ) from exc
    return _attempt_read(attempt, game)


@router.get("/quiz-attempts/{attempt_id}", response_model=QuizAttemptRead)
async def get_quiz_attempt(attempt_id: str, game: CurrentGame) -> QuizAttemptRead:
    return _attempt_read(_get_attempt(attempt_id, game), game)


@router.post("/quiz-attempts/{attempt_id}/answer", response_model=QuizAttemptRead)
async def answer_quiz_question(
    attempt_id: str,
    payload: AnswerRequest,
    game: CurrentGame,
) -> QuizAttemptRead:
    attempt = _get_attempt(attempt_id, game)
    try:
        attempt.select(payload.choice_index)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return _attempt_read(attempt, game)


@router.post("/quiz-attempts/{attempt_id}/advance", response_model=QuizAttemptRead)
async def advance_quiz(attempt_id: str, game: CurrentGame) -> QuizAttemptRead:
    attempt = _get_attempt(attempt_id, game)
    try:
        attempt.advance()
    except FlowStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _attempt_read(attempt, game)


@router.post(
    "/quiz-attempts/{attempt_id}/retry",
    response_model=QuizAttemptRead,
    status_code=status.HTTP_201_CREATED,
)
async def retry_quiz(attempt_id: str, game: CurrentGame) -> QuizAttemptRead:
    attempt = _get_attempt(attempt_id, game)
    try:
        retry = game.retry_quiz(attempt)
    except FlowStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _attempt_read(retry, game)


@router.post(
    "/chapters/{chapter_id}/boss-battles",
    response_model=BossBattleRead,
    status_code=status.HTTP_201_CREATED,
)
async def start_boss_battle(
    chapter_id: str,
    game: CurrentGame,
    catalog: Catalog,
) -> BossBattleRead:
    chapter = _get_playable_chapter(chapter_id, catalog, game)
    if chapter.boss is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chapter has no boss")
    try:
        battle = game.start_boss_battle(chapter)
    except EmptyQuizError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No quiz loaded for this boss",
        ) from exc
    except FlowStateError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return _battle_read(battle, game)


@router.get("/boss-battles/{battle_id}", response_model=BossBattleRead)
async def get_boss_battle(battle_id: str, game: CurrentGame) -> BossBattleRead:
    return _battle_read(_get_battle(battle_id, game), game)


@router.post("/boss-battles/{battle_id}/answer", response_model=BossBattleRead)
async def answer_boss_question(
    battle_id: str,
    payload: AnswerRequest,
    game: CurrentGame,
) -> BossBattleRead:
    battle = _get_battle(battle_id, game)
    try:
        battle.answer(payload.choice_index)
    except BattleLockedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except FlowStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return _battle_read(battle, game)


@router.post("/boss-battles/{battle_id}/restart", response_model=BossBattleRead)
async def restart_boss_battle(battle_id: str, game: CurrentGame) -> BossBattleRead:
    battle = _get_battle(battle_id, game)
    if battle.status is BattleStatus.in_progress:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Battle still in progress")
    battle.restart()
    return _battle_read(battle, game)
