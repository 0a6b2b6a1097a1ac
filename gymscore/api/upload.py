"""
Competitor list import.

`POST /api/import/{division}` takes the CSV template (or the same layout saved as .xlsx),
replaces the division's competitors and broadcasts the new state to every viewer.

Rows with missing columns or an empty class/group/name are skipped and reported back
with their line number; they never abort the import.
"""

# -------------------- Standard library imports --------------------
import logging
from io import BytesIO
from pathlib import PurePath
from zipfile import BadZipFile

# -------------------- Third-party imports --------------------
import openpyxl
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

# -------------------- Local application imports --------------------
from gymscore.api.deps import division_or_404, get_store
from gymscore.core import Division, decode_csv_bytes, split_csv_text
from gymscore.state.channel import snapshot_payload
from gymscore.state.store import StateStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["import"])

XLSX_TYPES = {"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"}
# Windows reports .csv as application/vnd.ms-excel, browsers sometimes as octet-stream.
CSV_TYPES = {"text/csv", "text/plain", "application/vnd.ms-excel", "application/octet-stream"}


def _cell_text(value) -> str:
    # Excel stores "1" (group) as 1.0; keep integers looking like the CSV would.
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _xlsx_rows(data: bytes) -> list[list[str]]:
    try:
        wb = openpyxl.load_workbook(filename=BytesIO(data), read_only=True, data_only=True)
    except (BadZipFile, KeyError, OSError):
        raise HTTPException(status_code=400, detail="invalid_xlsx")
    try:
        ws = wb.active
        if ws is None:
            raise HTTPException(status_code=400, detail="empty_workbook")
        return [[_cell_text(cell) for cell in row] for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


@router.post("/import/{division}")
async def import_competitors(
    division: Division = Depends(division_or_404),
    file: UploadFile = File(...),
    store: StateStore = Depends(get_store),
):
    """
    Import a competitor list.

    Expected layout (line 1 is a header and is skipped):
    class, group, (blank), name, then one score column per apparatus in division order.
    """
    suffix = PurePath(file.filename or "").suffix.lower()
    data = await file.read()

    if suffix == ".xlsx" or file.content_type in XLSX_TYPES:
        rows = _xlsx_rows(data)
    elif suffix == ".csv" or file.content_type in CSV_TYPES:
        rows = split_csv_text(decode_csv_bytes(data))
    else:
        raise HTTPException(status_code=400, detail="unsupported_file_type")

    result = await store.apply_csv_import(division, rows)
    logger.info(
        "Imported %s %s competitors from %s (%s errors)",
        result.imported,
        division.value,
        file.filename,
        len(result.errors),
    )
    return {
        "status": "success" if result.imported else "empty",
        "imported": result.imported,
        "errors": [error.model_dump() for error in result.errors],
        "state": snapshot_payload(division, result.state),
    }
