"""
Explicit mapping between the in-memory state and the spreadsheet bridge rows.

The bridge stores one row per competitor in the same column order as the CSV
template. Bump SHEET_SCHEMA_VERSION whenever `sheet_columns()` changes so a
mismatch shows up in tests instead of silently shifting columns on save.
"""
from __future__ import annotations

from typing import Any, Sequence

from .divisions import DEFAULT_CLASS, DEFAULT_GROUP, DEFAULT_NAME, Division
from .models import CompetitionState, Competitor, coerce_score

SHEET_SCHEMA_VERSION = 1

RESERVED = "reserved"
TOTAL = "total"


def sheet_columns(division: Division, include_total: bool = False) -> list[str]:
    columns = ["playerClass", "playerGroup", RESERVED, "name", *division.apparatus]
    if include_total:
        columns.append(TOTAL)
    return columns


def competitor_to_row(
    competitor: Competitor, division: Division, include_total: bool = False
) -> list[Any]:
    row: list[Any] = []
    for column in sheet_columns(division, include_total):
        if column == RESERVED:
            row.append("")
        elif column == TOTAL:
            row.append(competitor.total)
        elif column in division.apparatus:
            row.append(competitor.scores.get(column, 0.0))
        else:
            row.append(getattr(competitor, column))
    return row


def state_to_sheet(
    state: CompetitionState, division: Division, include_total: bool = False
) -> dict:
    """Payload for the bridge's `newState` field."""
    return {
        "competitionName": state.competitionName,
        "players": [
            competitor_to_row(c, division, include_total) for c in state.competitors
        ],
    }


def _text(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def row_to_competitor(row: Sequence[Any], division: Division, index: int) -> Competitor:
    """Inverse of `competitor_to_row`. A trailing total column is ignored."""
    cells = list(row)
    columns = sheet_columns(division)
    cells += [None] * (len(columns) - len(cells))
    values = dict(zip(columns, cells))
    competitor = Competitor(
        id=f"{division.id_prefix}-{index}",
        name=_text(values["name"], DEFAULT_NAME),
        playerClass=_text(values["playerClass"], DEFAULT_CLASS),
        playerGroup=_text(values["playerGroup"], DEFAULT_GROUP),
        scores={event: coerce_score(values[event]) for event in division.apparatus},
    )
    competitor.recompute_total(division.apparatus)
    return competitor


def record_to_competitor(record: dict, division: Division, index: int) -> Competitor:
    """Build a competitor from the bridge's object form.

    A stored `total` is treated as a cache and recomputed from `scores`.
    """
    raw_scores = record.get("scores") or {}
    if not isinstance(raw_scores, dict):
        raw_scores = {}
    competitor = Competitor(
        id=f"{division.id_prefix}-{index}",
        name=_text(record.get("name"), DEFAULT_NAME),
        playerClass=_text(record.get("playerClass"), DEFAULT_CLASS),
        playerGroup=_text(record.get("playerGroup"), DEFAULT_GROUP),
        scores={event: coerce_score(raw_scores.get(event)) for event in division.apparatus},
    )
    competitor.recompute_total(division.apparatus)
    return competitor


def sheet_to_state(data: dict, division: Division) -> CompetitionState:
    """Rebuild a CompetitionState from the bridge's `data` payload."""
    players = data.get("players")
    if not isinstance(players, list):
        raise ValueError("players must be a list")
    competitors = []
    for index, player in enumerate(players):
        if isinstance(player, dict):
            competitors.append(record_to_competitor(player, division, index))
        elif isinstance(player, (list, tuple)):
            competitors.append(row_to_competitor(player, division, index))
        else:
            raise ValueError(f"unsupported player entry at index {index}")
    return CompetitionState(
        competitionName=_text(data.get("competitionName"), ""),
        competitors=competitors,
    )
