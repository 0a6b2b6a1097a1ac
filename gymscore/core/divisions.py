"""Division catalogue: apparatus order, display labels and class ordering."""
from __future__ import annotations

from enum import Enum


class Division(str, Enum):
    WOMEN = "women"
    MEN = "men"

    @property
    def id_prefix(self) -> str:
        # Competitor ids look like "w-0" / "m-3".
        return self.value[0]

    @property
    def apparatus(self) -> tuple[str, ...]:
        return APPARATUS[self]


# Fixed column order used by both the CSV template and the spreadsheet bridge.
APPARATUS: dict[Division, tuple[str, ...]] = {
    Division.WOMEN: ("floor", "vault", "bars", "beam"),
    Division.MEN: ("floor", "pommel", "rings", "vault", "pbars", "hbar"),
}

EVENT_LABELS: dict[str, str] = {
    "floor": "床",
    "vault": "跳馬",
    "bars": "段違い平行棒",
    "beam": "平均台",
    "pommel": "あん馬",
    "rings": "つり輪",
    "pbars": "平行棒",
    "hbar": "鉄棒",
}

DIVISION_LABELS: dict[Division, str] = {
    Division.WOMEN: "女子",
    Division.MEN: "男子",
}

# Known classes are listed first in this order; anything else follows alphabetically.
CLASS_ORDER: dict[str, int] = {
    "上級": 1,
    "中級": 2,
    "初級": 3,
}

GROUP_SUFFIX = "組"
DEFAULT_NAME = "名無し"
DEFAULT_CLASS = "初級"
DEFAULT_GROUP = "1組"


def parse_division(raw: str | Division) -> Division:
    """Return the Division for `raw` or raise ValueError."""
    if isinstance(raw, Division):
        return raw
    value = (raw or "").strip().lower()
    try:
        return Division(value)
    except ValueError:
        raise ValueError(f"unknown division: {raw!r}") from None


def sort_classes(classes) -> list[str]:
    unique = set(classes)
    known = sorted((c for c in unique if c in CLASS_ORDER), key=CLASS_ORDER.__getitem__)
    unknown = sorted(c for c in unique if c not in CLASS_ORDER)
    return known + unknown


def normalize_group(raw: str) -> str:
    group = (raw or "").strip()
    if group.isascii() and group.isdigit():
        group += GROUP_SUFFIX
    return group
