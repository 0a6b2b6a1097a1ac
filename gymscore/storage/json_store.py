"""
JSON storage backend (local, file-based snapshots).

The spreadsheet bridge is the system of record; these files are a local safety net:
- Per-division state under `STORAGE_DIR/divisions/{division}.json` (atomic writes)
- Append-only audit log in NDJSON format (`STORAGE_DIR/events.ndjson`) with size-based rotation

Concurrency model:
- A per-division asyncio.Lock prevents overlapping writes for the same division
- A global audit lock serializes appends/rotations of the NDJSON audit log
"""

# -------------------- Standard library imports --------------------
import asyncio
import json
import logging
import os
import uuid
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

# -------------------- Third-party imports --------------------
from pydantic import ValidationError

# -------------------- Local application imports --------------------
from gymscore.config import settings
from gymscore.core import CompetitionState, Division

STORAGE_DIR = settings.storage_dir

# -------------------- Concurrency primitives --------------------
_division_locks: Dict[Division, asyncio.Lock] = {division: asyncio.Lock() for division in Division}
# Single lock for audit writes/rotation (NDJSON is append-only but rotation/rename must be serialized).
_audit_lock = asyncio.Lock()

# -------------------- Audit file rotation settings --------------------
MAX_AUDIT_FILE_SIZE_MB = int(os.getenv("MAX_AUDIT_FILE_SIZE_MB", "50"))

logger = logging.getLogger(__name__)


def _storage_dir() -> Path:
    return Path(STORAGE_DIR)


def _divisions_dir() -> Path:
    return _storage_dir() / "divisions"


def _events_path() -> Path:
    # Append-only audit log (NDJSON: 1 JSON object per line).
    return _storage_dir() / "events.ndjson"


def ensure_storage_dirs() -> None:
    _storage_dir().mkdir(parents=True, exist_ok=True)
    _divisions_dir().mkdir(parents=True, exist_ok=True)


def _atomic_write_json(path: Path, payload: Any) -> None:
    # Write to `*.tmp` then replace the target in one filesystem operation.
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    os.replace(tmp_path, path)


def load_division_states() -> Dict[Division, CompetitionState]:
    """Load division snapshots, skipping unknown names and corrupt files."""
    ensure_storage_dirs()
    states: Dict[Division, CompetitionState] = {}
    for path in _divisions_dir().glob("*.json"):
        try:
            division = Division(path.stem)
        except ValueError:
            logger.warning("Skipping unknown division state file: %s", path.name)
            continue

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.error("Corrupt JSON in division state file %s: %s", path.name, exc)
            continue
        except OSError as exc:
            logger.error("Failed to read division state file %s: %s", path.name, exc)
            continue

        try:
            state = CompetitionState.model_validate(data)
        except ValidationError as exc:
            logger.warning("Invalid division state in %s, skipping: %s", path.name, exc)
            continue

        # Totals are derived; never trust what is on disk.
        for competitor in state.competitors:
            competitor.recompute_total(division.apparatus)
        states[division] = state
        logger.debug("Loaded division state: %s (version=%s)", division.value, state.version)

    if states:
        logger.info("Successfully loaded %s division snapshots", len(states))
    return states


async def save_division_state(division: Division, state: CompetitionState) -> None:
    ensure_storage_dirs()
    payload = state.model_dump()
    path = _divisions_dir() / f"{division.value}.json"
    async with _division_locks[division]:
        _atomic_write_json(path, payload)


def _rotate_audit_file_if_needed() -> None:
    """Rotate audit file if it exceeds MAX_AUDIT_FILE_SIZE_MB."""
    path = _events_path()
    if not path.exists():
        return
    try:
        size_mb = path.stat().st_size / (1024 * 1024)
        if size_mb >= MAX_AUDIT_FILE_SIZE_MB:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
            archive_name = f"events.{timestamp}.ndjson"
            path.rename(path.parent / archive_name)
            logger.info("Rotated audit file to %s (was %.2f MB)", archive_name, size_mb)
    except OSError as exc:
        logger.warning("Failed to rotate audit file: %s", exc)


async def append_audit_event(event: dict) -> None:
    ensure_storage_dirs()
    line = json.dumps(event, ensure_ascii=False)
    async with _audit_lock:
        try:
            _rotate_audit_file_if_needed()
            with _events_path().open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            logger.warning("Failed to append audit event: %s", exc)


def read_latest_events(
    *,
    limit: int = 200,
    division: Division | None = None,
) -> list[dict]:
    """Return the newest audit events first, bounded by `limit`."""
    path = _events_path()
    if not path.exists():
        return []
    tail: deque[dict] = deque(maxlen=limit)
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if division is not None and event.get("division") != division.value:
                continue
            tail.append(event)
    return list(reversed(list(tail)))


def build_audit_event(
    *,
    action: str,
    payload: dict,
    division: Division,
    state: CompetitionState | None,
) -> dict:
    now = datetime.now(timezone.utc).isoformat()
    return {
        "id": str(uuid.uuid4()),
        "createdAt": now,
        "division": division.value,
        "action": action,
        "version": state.version if state else 0,
        "competitors": len(state.competitors) if state else 0,
        "payload": payload if isinstance(payload, dict) else {},
    }
