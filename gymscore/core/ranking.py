"""Competition ranking engine.

Single source of truth for ranks across the live API, viewers and exports:
- Sort descending by the metric (stable, so equal metrics keep input order)
- Equal metrics share a rank; the next lower metric resumes at its 1-based position (1, 1, 3, 4...)
- Missing or non-finite metrics count as 0
"""
from __future__ import annotations

import math
from typing import Callable, Iterable, Sequence

from .divisions import sort_classes
from .models import Competitor, RankedRow

Metric = Callable[[Competitor], "float | None"]

TOTAL = "total"


def _metric_value(competitor: Competitor, metric: Metric) -> float:
    value = metric(competitor)
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value


def metric_for(key: str) -> Metric:
    """Return the metric for `"total"` or a single apparatus name."""
    if key == TOTAL:
        return lambda c: c.total
    return lambda c: c.scores.get(key)


def rank(competitors: Iterable[Competitor], metric: Metric) -> list[RankedRow]:
    """Rank `competitors` by `metric` using competition ranking.

    Filtering to a class is the caller's job (see `rank_by_class`).
    """
    scored = [(competitor, _metric_value(competitor, metric)) for competitor in competitors]
    # sorted() is stable: equal metrics keep input order.
    scored = sorted(scored, key=lambda item: -item[1])

    rows: list[RankedRow] = []
    for i, (competitor, value) in enumerate(scored):
        if i == 0 or value < scored[i - 1][1]:
            current = i + 1
        else:
            current = rows[i - 1].rank
        rows.append(RankedRow(rank=current, competitor=competitor, metric=value))
    return rows


def rank_by_class(
    competitors: Sequence[Competitor], metric: Metric
) -> list[tuple[str, list[RankedRow]]]:
    """Rank each class separately; classes come back in display order."""
    result = []
    for player_class in sort_classes(c.playerClass for c in competitors):
        members = [c for c in competitors if c.playerClass == player_class]
        result.append((player_class, rank(members, metric)))
    return result
