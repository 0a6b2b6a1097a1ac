"""FastAPI dependencies: division parsing + access to the services kept on `app.state`."""

from fastapi import HTTPException, Request

from gymscore.core import Division, parse_division
from gymscore.state.channel import SyncChannel
from gymscore.state.store import StateStore
from gymscore.storage import SheetBridge


def division_or_404(division: str) -> Division:
    try:
        return parse_division(division)
    except ValueError:
        raise HTTPException(status_code=404, detail="unknown_division")


def get_store(request: Request) -> StateStore:
    return request.app.state.store


def get_channel(request: Request) -> SyncChannel:
    return request.app.state.channel


def get_bridge(request: Request) -> SheetBridge:
    return request.app.state.bridge
