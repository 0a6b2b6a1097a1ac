"""
Viewer-side client for the live feed (`/api/ws/{division}`).

Keeps one division's board up to date for a display process (venue TV, results kiosk):
- connects, sends REQUEST_STATE and yields every STATE_SNAPSHOT as a CompetitionState
- answers the server's PING with PONG
- on any disconnect waits `reconnect_delay` seconds and starts over, forever
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Callable

import websockets
from pydantic import ValidationError
from websockets.exceptions import WebSocketException

from gymscore.core import CompetitionState, Division, parse_division
from gymscore.state.channel import SNAPSHOT_TYPE

logger = logging.getLogger(__name__)

CONNECTING = "connecting"
CONNECTED = "connected"
DISCONNECTED = "disconnected"


def feed_url(base_url: str, division: Division | str) -> str:
    """`http://host:8000` -> `ws://host:8000/api/ws/women`."""
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/api/ws/{parse_division(division).value}"


class ViewerClient:
    def __init__(
        self,
        base_url: str,
        division: Division | str,
        *,
        reconnect_delay: float = 1.0,
        on_status: Callable[[str], None] | None = None,
        connect=None,
        sleep=asyncio.sleep,
    ):
        self.division = parse_division(division)
        self.url = feed_url(base_url, self.division)
        self.reconnect_delay = reconnect_delay
        self.on_status = on_status
        self._connect = connect or websockets.connect
        self._sleep = sleep
        self.status = DISCONNECTED

    def _set_status(self, status: str) -> None:
        if status == self.status:
            return
        self.status = status
        logger.info("Feed %s: %s", self.division.value, status)
        if self.on_status:
            self.on_status(status)

    async def states(self) -> AsyncIterator[CompetitionState]:
        """Every snapshot the server sends, across reconnects. Never returns on its own."""
        while True:
            self._set_status(CONNECTING)
            try:
                async with self._connect(self.url) as ws:
                    self._set_status(CONNECTED)
                    await ws.send(json.dumps({"type": "REQUEST_STATE"}))
                    async for state in self._read(ws):
                        yield state
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                logger.warning("Feed %s lost: %s", self.division.value, exc)
            self._set_status(DISCONNECTED)
            await self._sleep(self.reconnect_delay)

    async def _read(self, ws) -> AsyncIterator[CompetitionState]:
        # Versions restart with the server, so staleness is only judged within one connection.
        last_version = -1
        async for raw in ws:
            try:
                msg = json.loads(raw)
            except (TypeError, json.JSONDecodeError):
                logger.debug("Ignoring non-JSON frame on %s feed", self.division.value)
                continue
            if not isinstance(msg, dict):
                continue

            msg_type = msg.get("type")
            if msg_type == "PING":
                await ws.send(json.dumps({"type": "PONG", "timestamp": msg.get("timestamp")}))
                continue
            if msg_type != SNAPSHOT_TYPE:
                continue

            try:
                state = CompetitionState.model_validate(
                    {k: v for k, v in msg.items() if k not in ("type", "division")}
                )
            except ValidationError as exc:
                logger.warning("Ignoring malformed snapshot on %s feed: %s", self.division.value, exc)
                continue
            # The server sends a snapshot on accept and again for our REQUEST_STATE;
            # the second one carries the same version and is skipped.
            if state.version <= last_version:
                logger.debug(
                    "Dropping stale snapshot v%s (have v%s)", state.version, last_version
                )
                continue
            last_version = state.version
            yield state
