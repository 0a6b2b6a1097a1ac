"""
CSV competitor list parsing.

Template layout (one competitor per line, line 1 is a header and is skipped):
    class, group, (reserved), name, <one score column per apparatus>

Women: floor, vault, bars, beam. Men: floor, pommel, rings, vault, pbars, hbar.
A bad row never aborts the import; it is reported with its line number instead.
"""
from __future__ import annotations

import csv
import io
from typing import Iterable, Sequence

from .divisions import Division, normalize_group
from .models import Competitor, ParseError, coerce_score

# class, group, reserved, name
LEADING_COLUMNS = 4

# Operators export from Excel on Japanese Windows, so Shift_JIS (cp932) is common.
FALLBACK_ENCODINGS = ("utf-8-sig", "cp932")


def decode_csv_bytes(data: bytes) -> str:
    for encoding in FALLBACK_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="replace")


def split_csv_text(text: str) -> list[list[str]]:
    """Split raw CSV text into rows (header included)."""
    return list(csv.reader(io.StringIO(text.strip())))


def parse_rows(
    rows: Iterable[Sequence[str]], division: Division
) -> tuple[list[Competitor], list[ParseError]]:
    """Parse CSV rows (header first) into competitors plus per-row errors.

    Ids are assigned from the position among accepted rows: "w-0", "w-1", ...
    """
    apparatus = division.apparatus
    required = LEADING_COLUMNS + len(apparatus)
    competitors: list[Competitor] = []
    errors: list[ParseError] = []

    for index, row in enumerate(rows):
        if index == 0:
            continue
        line_number = index + 1
        cols = [str(col) if col is not None else "" for col in row]
        if not any(col.strip() for col in cols):
            continue
        if len(cols) < required:
            errors.append(
                ParseError(
                    lineNumber=line_number,
                    message=f"列の数が不足しています({required}列必要)。",
                )
            )
            continue

        player_class = cols[0].strip()
        player_group = normalize_group(cols[1])
        name = cols[3].strip()
        if not name or not player_class or not player_group:
            errors.append(
                ParseError(
                    lineNumber=line_number,
                    message="クラス、組、または選手名が空です。",
                )
            )
            continue

        scores = {
            event: coerce_score(cols[LEADING_COLUMNS + i])
            for i, event in enumerate(apparatus)
        }
        competitor = Competitor(
            id=f"{division.id_prefix}-{len(competitors)}",
            name=name,
            playerClass=player_class,
            playerGroup=player_group,
            scores=scores,
        )
        competitor.recompute_total(apparatus)
        competitors.append(competitor)

    return competitors, errors


def parse_csv_text(text: str, division: Division) -> tuple[list[Competitor], list[ParseError]]:
    return parse_rows(split_csv_text(text), division)
