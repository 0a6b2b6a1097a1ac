# gymscore/api/live.py
"""
Live scoreboard API (state + WebSockets).

This module is the operator/viewer surface over the StateStore:
- POST `/api/cmd`: apply commands (score entry, competition name, CSV import, sheet save/load/archive)
- WS `/api/ws/{division}`: real-time feed of full-state snapshots; accepts the same commands
- GET `/api/state/{division}`: on-demand snapshot for hydration/recovery

Key design points:
- Every state change is broadcast as a complete STATE_SNAPSHOT (never a delta)
- A viewer gets a snapshot on connect and again whenever it sends REQUEST_STATE
- Score updates for unknown competitor ids are rejected softly (stale client view)
"""

# -------------------- Standard library imports --------------------
import asyncio
import json
import logging

# -------------------- Third-party imports --------------------
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError
from starlette.websockets import WebSocket

# -------------------- Local application imports --------------------
from gymscore.api.deps import division_or_404, get_bridge, get_store
from gymscore.core import Division, parse_division, split_csv_text
from gymscore.state.channel import SyncChannel, WebSocketSubscriber, snapshot_payload
from gymscore.state.store import CompetitorNotFound, StateStore, UnknownApparatus
from gymscore.storage import SheetBridge, SheetBridgeError

logger = logging.getLogger(__name__)

router = APIRouter()

HEARTBEAT_INTERVAL_SEC = 30
HEARTBEAT_TIMEOUT_SEC = 60
RECEIVE_TIMEOUT_SEC = 180

SAVE_OK_MESSAGE = "スプレッドシートに保存しました"
SAVE_FAILED_MESSAGE = "エラー: 保存に失敗しました。"
LOAD_OK_MESSAGE = "スプレッドシートから読み込みました"
LOAD_FAILED_MESSAGE = "エラー: 読み込みに失敗しました。"
ARCHIVE_OK_MESSAGE = "大会データが正常にアーカイブされました。"
ARCHIVE_FAILED_MESSAGE = "エラー: アーカイブに失敗しました。"


class Cmd(BaseModel):
    """
    Command schema accepted by `/api/cmd` and over the WebSocket.

    `type` drives which optional fields must be present.
    """

    division: str
    type: str  # REQUEST_STATE, UPDATE_SCORE, SET_COMPETITION_NAME, IMPORT_CSV, SAVE, LOAD, ARCHIVE

    # for UPDATE_SCORE
    competitorId: str | None = None
    event: str | None = None
    # Raw input value; parsed best-effort ("9.5" -> 9.5, junk -> 0).
    value: float | str | None = None

    # for SET_COMPETITION_NAME
    competitionName: str | None = None

    # for IMPORT_CSV
    csvText: str | None = None


def _require(value, field: str):
    if value is None:
        raise HTTPException(status_code=400, detail=f"{field}_required")
    return value


async def execute_command(cmd: Cmd, store: StateStore, bridge: SheetBridge) -> dict:
    """Apply one command and return its result. Raises HTTPException for malformed input."""
    try:
        division = parse_division(cmd.division)
    except ValueError:
        raise HTTPException(status_code=400, detail="unknown_division")

    if cmd.type == "REQUEST_STATE":
        return {"status": "ok", "state": snapshot_payload(division, store.get_state(division))}

    if cmd.type == "UPDATE_SCORE":
        competitor_id = _require(cmd.competitorId, "competitorId")
        event = _require(cmd.event, "event")
        try:
            state = await store.update_score(division, competitor_id, event, cmd.value)
        except UnknownApparatus:
            raise HTTPException(status_code=400, detail="unknown_apparatus")
        except CompetitorNotFound as exc:
            logger.warning("Score update ignored: %s", exc)
            return {"status": "ignored", "reason": "competitor_not_found"}
        competitor = state.find(competitor_id)
        return {
            "status": "ok",
            "version": state.version,
            "competitor": competitor.model_dump() if competitor else None,
        }

    if cmd.type == "SET_COMPETITION_NAME":
        name = _require(cmd.competitionName, "competitionName")
        state = await store.set_competition_name(division, name)
        return {"status": "ok", "version": state.version, "competitionName": state.competitionName}

    if cmd.type == "IMPORT_CSV":
        csv_text = _require(cmd.csvText, "csvText")
        result = await store.apply_csv_import(division, split_csv_text(csv_text))
        return {
            "status": "ok",
            "version": result.state.version,
            "imported": result.imported,
            "errors": [error.model_dump() for error in result.errors],
        }

    if cmd.type == "SAVE":
        # In-memory state stays authoritative whatever the outcome; the operator can retry.
        try:
            message = await bridge.save(division, store.get_state(division))
        except SheetBridgeError as exc:
            logger.error("Saving %s to sheet failed: %s", division.value, exc.message)
            return {"status": "error", "success": False, "message": f"{SAVE_FAILED_MESSAGE} ({exc.message})"}
        logger.debug("Bridge save response for %s: %s", division.value, message)
        return {"status": "ok", "success": True, "message": SAVE_OK_MESSAGE}

    if cmd.type == "LOAD":
        try:
            loaded = await bridge.load_with_retry(division)
        except SheetBridgeError as exc:
            logger.error("Loading %s from sheet failed: %s", division.value, exc.message)
            return {"status": "error", "success": False, "message": f"{LOAD_FAILED_MESSAGE} ({exc.message})"}
        state = await store.replace_state(division, loaded, action="LOAD")
        return {
            "status": "ok",
            "success": True,
            "message": LOAD_OK_MESSAGE,
            "version": state.version,
            "competitors": len(state.competitors),
        }

    if cmd.type == "ARCHIVE":
        try:
            message = await bridge.archive(division)
        except SheetBridgeError as exc:
            logger.error("Archiving %s failed: %s", division.value, exc.message)
            return {"status": "error", "success": False, "message": ARCHIVE_FAILED_MESSAGE}
        logger.info("Competition for %s finalized", division.value)
        return {"status": "ok", "success": True, "message": message or ARCHIVE_OK_MESSAGE}

    raise HTTPException(status_code=400, detail="unknown_command")


@router.post("/cmd")
async def cmd(
    cmd: Cmd,
    store: StateStore = Depends(get_store),
    bridge: SheetBridge = Depends(get_bridge),
):
    """
    Handle operator commands.

    Returns:
    - `{"status": "ok", ...}` when applied
    - `{"status": "ignored", "reason": ...}` for soft rejections (unknown competitor id)
    - `{"status": "error", "success": false, "message": ...}` when the spreadsheet call failed
    """
    logger.info("Command %s for %s", cmd.type, cmd.division)
    return await execute_command(cmd, store, bridge)


@router.get("/state/{division}")
async def get_state(
    division: Division = Depends(division_or_404),
    store: StateStore = Depends(get_store),
):
    """Return the current full snapshot for a division."""
    return snapshot_payload(division, store.get_state(division))


async def _heartbeat(subscriber: WebSocketSubscriber, division: Division, last_pong: dict[str, float]) -> None:
    """Send PING every 30s; close if no PONG for 60s."""
    while True:
        try:
            await asyncio.sleep(HEARTBEAT_INTERVAL_SEC)
            now = asyncio.get_running_loop().time()

            if now - (last_pong.get("ts") or 0.0) > HEARTBEAT_TIMEOUT_SEC:
                logger.warning("Heartbeat timeout for %s viewer, closing", division.value)
                await subscriber.close(code=1000)
                break

            await subscriber.send(json.dumps({"type": "PING", "timestamp": now}, ensure_ascii=False))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Heartbeat error for %s: %s", division.value, e)
            break


async def _send_ack(subscriber: WebSocketSubscriber, command: str, result: dict) -> None:
    success = result.get("success", result.get("status") == "ok")
    payload = {"type": "ACK", "command": command, **result, "success": success}
    payload.pop("state", None)
    await subscriber.send(json.dumps(payload, ensure_ascii=False))


@router.websocket("/ws/{division}")
async def websocket_endpoint(ws: WebSocket, division: str):
    """
    Per-division viewer/operator WebSocket.

    Flow:
    - Reject unknown divisions before accepting
    - Register the viewer and send the current STATE_SNAPSHOT (so new viewers never see a blank board)
    - Maintain a heartbeat (PING/PONG)
    - Handle REQUEST_STATE refreshes and operator commands (answered with ACK frames)
    """
    try:
        div = parse_division(division)
    except ValueError:
        logger.warning("WS connect denied: unknown division %r", division)
        await ws.close(code=4404, reason="unknown_division")
        return

    store: StateStore = ws.app.state.store
    channel: SyncChannel = ws.app.state.channel
    bridge: SheetBridge = ws.app.state.bridge

    await ws.accept()
    subscriber = WebSocketSubscriber(ws)
    if not await channel.attach(div, subscriber):
        await channel.detach(div, subscriber)
        await subscriber.close()
        return

    last_pong = {"ts": asyncio.get_running_loop().time()}
    heartbeat_task = asyncio.create_task(_heartbeat(subscriber, div, last_pong))

    try:
        while True:
            try:
                data = await asyncio.wait_for(ws.receive_text(), timeout=RECEIVE_TIMEOUT_SEC)
            except asyncio.TimeoutError:
                logger.warning("WebSocket receive timeout for %s", div.value)
                break
            except Exception as e:
                logger.info("WebSocket receive ended for %s: %s", div.value, e)
                break

            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("Invalid JSON from %s viewer", div.value)
                continue
            if not isinstance(msg, dict):
                continue

            msg_type = msg.get("type")
            if msg_type == "PONG":
                last_pong["ts"] = asyncio.get_running_loop().time()
                continue
            if msg_type == "PING":
                await subscriber.send(
                    json.dumps({"type": "PONG", "timestamp": msg.get("timestamp")}, ensure_ascii=False)
                )
                continue
            if msg_type == "REQUEST_STATE":
                # Re-handshake after a reconnect or a backgrounded tab.
                await channel.send_snapshot(div, subscriber)
                continue

            try:
                command = Cmd.model_validate({**msg, "division": div.value})
            except ValidationError as exc:
                await _send_ack(subscriber, str(msg_type), {"status": "error", "success": False, "message": str(exc)})
                continue
            try:
                result = await execute_command(command, store, bridge)
            except HTTPException as exc:
                result = {"status": "error", "success": False, "message": exc.detail}
            await _send_ack(subscriber, command.type, result)

    except Exception as e:
        logger.error("WebSocket error for %s: %s", div.value, e)
    finally:
        heartbeat_task.cancel()
        try:
            await heartbeat_task
        except asyncio.CancelledError:
            pass

        await channel.detach(div, subscriber)
        await subscriber.close()
