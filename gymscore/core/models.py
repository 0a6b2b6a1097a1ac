"""Data model shared by the store, the API layer and the exporters."""
from __future__ import annotations

import math
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict

# Scores are entered to the thousandth; totals are kept at the same precision so
# equal-looking totals compare equal when ranking.
TOTAL_PRECISION = 3


def coerce_score(value: Any) -> float:
    """Best-effort numeric parsing: anything unusable becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return 0.0
        try:
            number = float(raw)
        except ValueError:
            return 0.0
    else:
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


class Competitor(BaseModel):
    id: str
    name: str
    playerClass: str
    playerGroup: str
    scores: dict[str, float] = {}
    # Derived from `scores`; always rewritten by `recompute_total`.
    total: float = 0.0

    def recompute_total(self, apparatus: Iterable[str]) -> float:
        self.total = round(
            sum(self.scores.get(event, 0.0) for event in apparatus), TOTAL_PRECISION
        )
        return self.total


class CompetitionState(BaseModel):
    competitionName: str = ""
    competitors: list[Competitor] = []
    # Bumped on every mutation so viewers can drop stale frames.
    version: int = 0

    def find(self, competitor_id: str) -> Competitor | None:
        for competitor in self.competitors:
            if competitor.id == competitor_id:
                return competitor
        return None


class RankedRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int
    competitor: Competitor
    metric: float


class ParseError(BaseModel):
    lineNumber: int
    message: str


class ImportResult(BaseModel):
    state: CompetitionState
    errors: list[ParseError] = []
    imported: int = 0
