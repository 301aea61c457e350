from __future__ import annotations

import json
import logging
from pathlib import Path

from examquest.schemas.content import Chapter, ContentCatalogFile, Tier

logger = logging.getLogger(__name__)


class ContentCatalog:
    """Read-only chapter catalog grouped into tiers."""

    def __init__(self, tiers: list[Tier], chapters: list[Chapter]) -> None:
        self._tiers = sorted(tiers, key=lambda tier: tier.id)
        self._chapters = list(chapters)
        self._by_id = {chapter.id: chapter for chapter in chapters}
        if len(self._by_id) != len(self._chapters):
            raise ValueError("Duplicate chapter id in catalog")

    @classmethod
    def from_file(cls, path: str | Path) -> ContentCatalog:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        parsed = ContentCatalogFile.model_validate(raw)
        logger.info("Loaded %d chapters from %s", len(parsed.chapters), path)
        return cls(parsed.tiers, parsed.chapters)

    @property
    def tiers(self) -> list[Tier]:
        return list(self._tiers)

    @property
    def chapters(self) -> list[Chapter]:
        return list(self._chapters)

    @property
    def max_tier(self) -> int:
        tier_ids = [tier.id for tier in self._tiers] + [chapter.tier for chapter in self._chapters]
        return max(tier_ids, default=1)

    def get(self, chapter_id: str) -> Chapter | None:
        return self._by_id.get(chapter_id)

    def chapters_in_tier(self, tier_id: int) -> list[Chapter]:
        return [chapter for chapter in self._chapters if chapter.tier == tier_id]
