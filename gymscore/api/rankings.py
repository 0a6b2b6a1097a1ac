# gymscore/api/rankings.py
"""
Rankings endpoints and printable exports.

- GET `/api/rankings/{division}`: ranked rows per class for the total or a single apparatus
- GET `/api/rankings/{division}/export.xlsx`: one worksheet per class
- GET `/api/rankings/{division}/export.pdf`: one page per class (landscape A4), the print view

All ranks come from `gymscore.core.ranking`; nothing here re-derives tie handling.
"""

# -------------------- Standard library imports --------------------
import logging
from io import BytesIO
from urllib.parse import quote

# -------------------- Third-party imports --------------------
import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

# -------------------- Local application imports --------------------
from gymscore.api.deps import division_or_404, get_store
from gymscore.core import (
    DIVISION_LABELS,
    EVENT_LABELS,
    TOTAL,
    CompetitionState,
    Division,
    metric_for,
    rank_by_class,
)
from gymscore.state.store import StateStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rankings"])

# -------------------- Font setup (PDF rendering) --------------------
# Names and classes are Japanese; the built-in CID font renders them without shipping a TTF.
DEFAULT_FONT = "Helvetica"
try:
    pdfmetrics.registerFont(UnicodeCIDFont("HeiseiKakuGo-W5"))
    DEFAULT_FONT = "HeiseiKakuGo-W5"
except Exception as e:
    logger.warning("Could not register HeiseiKakuGo-W5: %s. Using Helvetica.", e)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _metric_key(division: Division, metric: str) -> str:
    if metric == TOTAL or metric in division.apparatus:
        return metric
    raise HTTPException(status_code=400, detail="unknown_metric")


@router.get("/rankings/{division}")
async def get_rankings(
    division: Division = Depends(division_or_404),
    metric: str = Query(default=TOTAL),
    store: StateStore = Depends(get_store),
):
    """Ranked rows grouped by class (classes in display order)."""
    key = _metric_key(division, metric)
    state = store.get_state(division)
    return {
        "division": division.value,
        "metric": key,
        "competitionName": state.competitionName,
        "version": state.version,
        "classes": [
            {
                "playerClass": player_class,
                "rows": [
                    {
                        "rank": row.rank,
                        "id": row.competitor.id,
                        "name": row.competitor.name,
                        "playerGroup": row.competitor.playerGroup,
                        "metric": row.metric,
                    }
                    for row in rows
                ],
            }
            for player_class, rows in rank_by_class(state.competitors, metric_for(key))
        ],
    }


# ------- helpers -------
def build_class_frames(state: CompetitionState, division: Division) -> list[tuple[str, pd.DataFrame]]:
    """
    One DataFrame per class for the print view: rank by total, then name, group,
    every apparatus score and the total (3 decimals, as shown on the scoreboard).
    """
    columns = ["順位", "名前", "組"] + [EVENT_LABELS[e] for e in division.apparatus] + ["総合得点"]
    frames = []
    for player_class, rows in rank_by_class(state.competitors, metric_for(TOTAL)):
        data = [
            [row.rank, row.competitor.name, row.competitor.playerGroup]
            + [round(row.competitor.scores.get(e, 0.0), 3) for e in division.apparatus]
            + [round(row.competitor.total, 3)]
            for row in rows
        ]
        frames.append((player_class, pd.DataFrame(data, columns=columns)))
    return frames


def _title(state: CompetitionState, division: Division, player_class: str) -> str:
    base = state.competitionName or DIVISION_LABELS[division]
    return f"{base} {player_class}クラス 総合得点ランキング"


def frames_to_xlsx(frames: list[tuple[str, pd.DataFrame]]) -> bytes:
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        if not frames:
            pd.DataFrame().to_excel(writer, sheet_name="ranking", index=False)
        for player_class, df in frames:
            # Excel caps sheet names at 31 characters.
            df.to_excel(writer, sheet_name=player_class[:31] or "ranking", index=False)
    return buffer.getvalue()


def _df_to_table(df: pd.DataFrame) -> Table:
    formatted = df.copy()
    for column in formatted.columns[3:]:
        formatted[column] = formatted[column].map(lambda v: f"{v:.3f}")
    data = [formatted.columns.tolist()] + formatted.astype(str).values.tolist()

    table = Table(data, hAlign="CENTER")
    tbl_style = TableStyle(
        [
            ("FONTNAME", (0, 0), (-1, -1), DEFAULT_FONT),
            ("FONTSIZE", (0, 0), (-1, 0), 11),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#4F81BD")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ]
    )
    # Alternate row background colors
    for i in range(1, len(data)):
        bg_color = colors.whitesmoke if i % 2 == 0 else colors.lightgrey
        tbl_style.add("BACKGROUND", (0, i), (-1, i), bg_color)
    table.setStyle(tbl_style)
    return table


def frames_to_pdf(frames: list[tuple[str, pd.DataFrame]], state: CompetitionState, division: Division) -> bytes:
    """Render each class on its own landscape-A4 page."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=36,
        rightMargin=36,
        topMargin=36,
        bottomMargin=36,
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "TitleStyle",
        parent=styles["Heading1"],
        alignment=1,  # center
        fontSize=18,
        fontName=DEFAULT_FONT,
        spaceAfter=12,
    )

    elements = []
    for i, (player_class, df) in enumerate(frames):
        if i:
            elements.append(PageBreak())
        elements.append(Paragraph(_title(state, division, player_class), title_style))
        elements.append(Spacer(1, 12))
        elements.append(_df_to_table(df))
    if not elements:
        elements.append(Paragraph(state.competitionName or DIVISION_LABELS[division], title_style))

    doc.build(elements)
    return buffer.getvalue()


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}


@router.get("/rankings/{division}/export.xlsx")
async def export_xlsx(
    division: Division = Depends(division_or_404),
    store: StateStore = Depends(get_store),
):
    state = store.get_state(division)
    content = frames_to_xlsx(build_class_frames(state, division))
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers=_attachment(f"ranking_{division.value}.xlsx"),
    )


@router.get("/rankings/{division}/export.pdf")
async def export_pdf(
    division: Division = Depends(division_or_404),
    store: StateStore = Depends(get_store),
):
    state = store.get_state(division)
    content = frames_to_pdf(build_class_frames(state, division), state, division)
    return Response(
        content=content,
        media_type="application/pdf",
        headers=_attachment(f"ranking_{division.value}.pdf"),
    )
