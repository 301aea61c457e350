"""XP, level and tier bookkeeping.

All changes go through `reduce`, which takes the current state and an action
and returns a new state. States are immutable so a caller holding an older
state can never observe a half-applied update.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

DEFAULT_XP_PER_LEVEL = 1000
DEFAULT_TIER_LEVEL_STEP = 5
DEFAULT_MAX_TIER = 4


@dataclass(frozen=True, slots=True)
class ProgressionRules:
    xp_per_level: int = DEFAULT_XP_PER_LEVEL
    tier_level_step: int = DEFAULT_TIER_LEVEL_STEP
    max_tier: int = DEFAULT_MAX_TIER


@dataclass(frozen=True, slots=True)
class ProgressionState:
    xp: int = 0
    level: int = 1
    unlocked_tiers: tuple[int, ...] = (1,)
    completed_chapters: tuple[str, ...] = ()
    badges: tuple[str, ...] = ()
    titles: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AddExperience:
    amount: int


@dataclass(frozen=True, slots=True)
class MarkChapterCompleted:
    chapter_id: str


@dataclass(frozen=True, slots=True)
class AddBadge:
    badge: str


@dataclass(frozen=True, slots=True)
class AddTitle:
    title: str


@dataclass(frozen=True, slots=True)
class ResetProgress:
    pass


@dataclass(frozen=True, slots=True)
class SetUserData:
    xp: int = 0
    completed_chapters: tuple[str, ...] = ()
    badges: tuple[str, ...] = ()
    titles: tuple[str, ...] = ()


Action = AddExperience | MarkChapterCompleted | AddBadge | AddTitle | ResetProgress | SetUserData

INITIAL_STATE = ProgressionState()


def level_for_xp(xp_total: int, xp_per_level: int = DEFAULT_XP_PER_LEVEL) -> int:
    return xp_total // xp_per_level + 1


def tier_threshold(tier: int, tier_level_step: int = DEFAULT_TIER_LEVEL_STEP) -> int:
    """Level needed to unlock `tier`. Tier 1 is always open."""
    if tier <= 1:
        return 1
    return tier_level_step * (tier - 1)


def unlock_tiers(
    unlocked: tuple[int, ...],
    level: int,
    rules: ProgressionRules,
) -> tuple[int, ...]:
    tiers = list(unlocked) if unlocked else [1]
    for tier in range(2, rules.max_tier + 1):
        if tier not in tiers and level >= tier_threshold(tier, rules.tier_level_step):
            tiers.append(tier)
    return tuple(tiers)


def validate_xp_amount(amount: object) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError("XP amount must be an integer")
    if amount < 0:
        raise ValueError("XP amount must be non-negative")
    return amount


def _unique(items: tuple[str, ...] | list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def reduce(
    state: ProgressionState,
    action: Action,
    rules: ProgressionRules = ProgressionRules(),
) -> ProgressionState:
    match action:
        case AddExperience(amount=amount):
            xp_total = state.xp + validate_xp_amount(amount)
            level = level_for_xp(xp_total, rules.xp_per_level)
            return replace(
                state,
                xp=xp_total,
                level=level,
                unlocked_tiers=unlock_tiers(state.unlocked_tiers, level, rules),
            )
        case MarkChapterCompleted(chapter_id=chapter_id):
            if chapter_id in state.completed_chapters:
                return state
            return replace(state, completed_chapters=(*state.completed_chapters, chapter_id))
        case AddBadge(badge=badge):
            if badge in state.badges:
                return state
            return replace(state, badges=(*state.badges, badge))
        case AddTitle(title=title):
            if title in state.titles:
                return state
            return replace(state, titles=(*state.titles, title))
        case ResetProgress():
            return INITIAL_STATE
        case SetUserData():
            xp_total = max(0, action.xp)
            level = level_for_xp(xp_total, rules.xp_per_level)
            return replace(
                state,
                xp=xp_total,
                level=level,
                unlocked_tiers=unlock_tiers(INITIAL_STATE.unlocked_tiers, level, rules),
                completed_chapters=_unique(action.completed_chapters),
                badges=_unique(action.badges),
                titles=_unique(action.titles),
            )
    raise TypeError(f"Unsupported progression action: {action!r}")


@dataclass(slots=True)
class ProgressionSnapshot:
    """Serializable view of a progression state."""

    xp: int
    level: int
    unlocked_tiers: list[int]
    completed_chapters: list[str]
    badges: list[str]
    titles: list[str]
    next_level_xp: int = field(default=0)

    @classmethod
    def from_state(
        cls,
        state: ProgressionState,
        rules: ProgressionRules = ProgressionRules(),
    ) -> ProgressionSnapshot:
        return cls(
            xp=state.xp,
            level=state.level,
            unlocked_tiers=sorted(state.unlocked_tiers),
            completed_chapters=list(state.completed_chapters),
            badges=list(state.badges),
            titles=list(state.titles),
            next_level_xp=state.level * rules.xp_per_level,
        )
