from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from gymscore.core import parse_division
from gymscore.storage import json_store

router = APIRouter(tags=["audit"])


class AuditEventOut(BaseModel):
    id: str
    createdAt: str
    division: str
    action: str
    version: int
    competitors: int
    payload: dict | None = None


@router.get("/audit/events", response_model=list[AuditEventOut])
async def list_audit_events(
    division: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=2000),
    include_payload: bool = Query(default=False, alias="includePayload"),
):
    """
    Audit log stream from the local NDJSON file (most recent first).
    Use after the event to see which change landed when, per division.
    """
    div = None
    if division is not None:
        try:
            div = parse_division(division)
        except ValueError:
            raise HTTPException(status_code=400, detail="unknown_division")

    events = json_store.read_latest_events(limit=limit, division=div)
    return [
        AuditEventOut(
            id=str(ev.get("id", "")),
            createdAt=str(ev.get("createdAt", "")),
            division=str(ev.get("division", "")),
            action=str(ev.get("action", "")),
            version=int(ev.get("version", 0) or 0),
            competitors=int(ev.get("competitors", 0) or 0),
            payload=ev.get("payload") if include_payload else None,
        )
        for ev in events
    ]
