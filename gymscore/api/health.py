# gymscore/api/health.py
"""Health check endpoints for monitoring and load balancer probes."""

# Read-only diagnostics only: competitor counts, viewer counts, bridge status, storage sizes.

# -------------------- Standard library imports --------------------
import logging
from datetime import datetime, timezone
from pathlib import Path

# -------------------- Third-party imports --------------------
from fastapi import APIRouter, Depends

# -------------------- Local application imports --------------------
from gymscore.api.deps import get_bridge, get_channel, get_store
from gymscore.core import Division
from gymscore.state.channel import SyncChannel
from gymscore.state.store import StateStore
from gymscore.storage import SheetBridge, json_store

logger = logging.getLogger(__name__)
# Router is mounted under `/api` in `gymscore/main.py`.
router = APIRouter(tags=["health"])


def _get_audit_file_size_mb() -> float:
    """Return audit file size in MB, or 0 if not found."""
    path = json_store._events_path()
    try:
        if path.exists():
            return path.stat().st_size / (1024 * 1024)
    except OSError as exc:
        logger.debug("Could not stat audit file: %s", exc)
    return 0.0


def _get_storage_usage_mb() -> float:
    """Return total storage directory size in MB."""
    storage_path = Path(json_store.STORAGE_DIR)
    try:
        if not storage_path.exists():
            return 0.0
        total = sum(f.stat().st_size for f in storage_path.rglob("*") if f.is_file())
        return total / (1024 * 1024)
    except OSError as exc:
        logger.debug("Could not measure storage dir: %s", exc)
    return 0.0


@router.get("/health")
async def health_check(
    store: StateStore = Depends(get_store),
    channel: SyncChannel = Depends(get_channel),
    bridge: SheetBridge = Depends(get_bridge),
):
    """
    Health check endpoint for monitoring.

    Returns:
        - status: "ok" if healthy
        - competitors: competitor count per division
        - viewers: connected subscribers per division
        - sheet: whether the spreadsheet bridge is configured / currently busy
        - audit_file_mb / storage_mb: local snapshot footprint
        - timestamp: current server time (UTC)
    """
    return {
        "status": "ok",
        "competitors": store.competitor_counts(),
        "viewers": {division.value: await channel.count(division) for division in Division},
        "sheet": {"configured": bridge.configured, "busy": bridge.busy},
        "audit_file_mb": round(_get_audit_file_size_mb(), 2),
        "storage_mb": round(_get_storage_usage_mb(), 2),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/ready")
async def readiness_check(store: StateStore = Depends(get_store)):
    """Readiness probe: the store answers."""
    counts = store.competitor_counts()
    return {"status": "ready", "divisions": len(counts)}


@router.get("/health/live")
async def liveness_check():
    """Liveness probe: basic check that the service is running."""
    return {"status": "alive"}
