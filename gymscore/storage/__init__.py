from .json_store import (
    STORAGE_DIR,
    append_audit_event,
    build_audit_event,
    ensure_storage_dirs,
    load_division_states,
    read_latest_events,
    save_division_state,
)
from .sheet_bridge import (
    SheetBridge,
    SheetBridgeBusy,
    SheetBridgeError,
    SheetBridgeNotConfigured,
)

__all__ = [
    "STORAGE_DIR",
    "append_audit_event",
    "build_audit_event",
    "ensure_storage_dirs",
    "load_division_states",
    "read_latest_events",
    "save_division_state",
    "SheetBridge",
    "SheetBridgeBusy",
    "SheetBridgeError",
    "SheetBridgeNotConfigured",
]
