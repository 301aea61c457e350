from pydantic import BaseModel, Field


class Choice(BaseModel):
    text: str
    correct: bool = False
    explanation: str = ""


class Question(BaseModel):
    question: str
    choices: list[Choice] = Field(min_length=1)


class BossRewards(BaseModel):
    xp: int = Field(default=0, ge=0)
    badge: str | None = None
    title: str | None = None


class BossDefinition(BaseModel):
    name: str
    description: str = ""
    difficulty: int = Field(default=1, ge=1, le=5)
    quiz: list[Question] = Field(default_factory=list)
    rewards: BossRewards = Field(default_factory=BossRewards)


class MinigameReward(BaseModel):
    xp: int | None = Field(default=None, ge=0)
    badge: str | None = None
    title: str | None = None


class Chapter(BaseModel):
    id: str
    tier: int = Field(default=1, ge=1)
    title: str
    summary: str = ""
    quiz: list[Question] = Field(default_factory=list)
    boss: BossDefinition | None = None
    minigame: MinigameReward | None = None


class Tier(BaseModel):
    id: int = Field(ge=1)
    name: str


class ContentCatalogFile(BaseModel):
    tiers: list[Tier] = Field(default_factory=list)
    chapters: list[Chapter] = Field(default_factory=list)
