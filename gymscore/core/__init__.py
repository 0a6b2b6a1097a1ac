from .divisions import (
    APPARATUS,
    CLASS_ORDER,
    DIVISION_LABELS,
    EVENT_LABELS,
    Division,
    parse_division,
    sort_classes,
)
from .models import (
    CompetitionState,
    Competitor,
    ImportResult,
    ParseError,
    RankedRow,
    coerce_score,
)
from .ranking import TOTAL, metric_for, rank, rank_by_class
from .csv_import import decode_csv_bytes, parse_csv_text, parse_rows, split_csv_text
from .sheet_format import (
    SHEET_SCHEMA_VERSION,
    competitor_to_row,
    sheet_columns,
    sheet_to_state,
    state_to_sheet,
)

__all__ = [
    "APPARATUS",
    "CLASS_ORDER",
    "DIVISION_LABELS",
    "EVENT_LABELS",
    "Division",
    "parse_division",
    "sort_classes",
    "CompetitionState",
    "Competitor",
    "ImportResult",
    "ParseError",
    "RankedRow",
    "coerce_score",
    "TOTAL",
    "metric_for",
    "rank",
    "rank_by_class",
    "decode_csv_bytes",
    "parse_csv_text",
    "parse_rows",
    "split_csv_text",
    "SHEET_SCHEMA_VERSION",
    "competitor_to_row",
    "sheet_columns",
    "sheet_to_state",
    "state_to_sheet",
]
