from fastapi import APIRouter

from examquest.api.deps import CurrentGame
from examquest.schemas.progression import NotificationRead, ProgressionRead
from examquest.services.game_session import GameSession
from examquest.services.progression import ProgressionSnapshot

# Read-only for players. XP, badges, titles and completions come from the
# quiz and boss flows or from an admin edit.
router = APIRouter(prefix="/progression", tags=["progression"])


def _progression_read(game: GameSession, *, drain: bool = True) -> ProgressionRead:
    tracker = game.progression
    snapshot = ProgressionSnapshot.from_state(tracker.state, tracker.rules)
    notifications = game.notifications.drain() if drain else []
    return ProgressionRead(
        xp=snapshot.xp,
        level=snapshot.level,
        next_level_xp=snapshot.next_level_xp,
        unlocked_tiers=snapshot.unlocked_tiers,
        completed_chapters=snapshot.completed_chapters,
        badges=snapshot.badges,
        titles=snapshot.titles,
        persistence_pending=tracker.persistence_pending,
        notifications=[NotificationRead.model_validate(item) for item in notifications],
    )


@router.get("/me", response_model=ProgressionRead)
async def get_my_progression(game: CurrentGame) -> ProgressionRead:
    return _progression_read(game, drain=False)


@router.post("/flush", response_model=ProgressionRead)
async def flush_progression(game: CurrentGame) -> ProgressionRead:
    await game.progression.flush()
    return _progression_read(game)


notifications_router = APIRouter(prefix="/notifications", tags=["progression"])


@notifications_router.get("", response_model=list[NotificationRead])
async def drain_notifications(game: CurrentGame) -> list[NotificationRead]:
    return [NotificationRead.model_validate(item) for item in game.notifications.drain()]
