"""
Synchronization channel: fans out full-state snapshots to every viewer of a division.

- No diffing: every delivery carries the entire CompetitionState
- At-most-once: a subscriber that fails or stalls is dropped; it gets the latest
  state again when it reconnects and re-issues REQUEST_STATE
- Ordering per division comes from the store, which calls `broadcast` while holding
  the division lock; WebSocket delivery only enqueues, so a stalled viewer never
  holds that lock
"""

# -------------------- Standard library imports --------------------
import asyncio
import json
import logging
from typing import AsyncIterator

# -------------------- Third-party imports --------------------
from starlette.websockets import WebSocket

# -------------------- Local application imports --------------------
from gymscore.core import CompetitionState, Division
from gymscore.state.store import StateStore

logger = logging.getLogger(__name__)

SNAPSHOT_TYPE = "STATE_SNAPSHOT"


def snapshot_payload(division: Division, state: CompetitionState) -> dict:
    return {"type": SNAPSHOT_TYPE, "division": division.value, **state.model_dump()}


class WebSocketSubscriber:
    """
    A connected viewer.

    Every outbound frame (snapshots, ACKs, PING/PONG) goes through a bounded queue
    drained by a single sender task, so `deliver` never waits on the socket and frames
    keep their order. A full queue or a send stalled past `send_timeout` disconnects
    the viewer.
    """

    def __init__(self, ws: WebSocket, send_timeout: float = 5.0, max_queue: int = 32):
        self.ws = ws
        self.send_timeout = send_timeout
        self._outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=max_queue)
        self._sender: asyncio.Task | None = None
        self.closed = False

    async def send(self, message: str) -> None:
        """Queue one text frame. Raises asyncio.QueueFull when the viewer is not keeping up."""
        if self.closed:
            raise ConnectionError("viewer disconnected")
        self._outbox.put_nowait(message)
        if self._sender is None:
            self._sender = asyncio.create_task(self._drain())

    async def deliver(self, division: Division, state: CompetitionState) -> None:
        await self.send(json.dumps(snapshot_payload(division, state), ensure_ascii=False))

    async def _drain(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await asyncio.wait_for(self.ws.send_text(message), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                logger.warning("Send timeout for viewer, disconnecting slow client")
                await self._shutdown(1008, "Send timeout")
                return
            except Exception as exc:
                logger.debug("Send to viewer failed: %s", exc)
                self.closed = True
                return

    async def _shutdown(self, code: int, reason: str | None) -> None:
        self.closed = True
        try:
            await asyncio.wait_for(self.ws.close(code=code, reason=reason), timeout=self.send_timeout)
        except Exception:
            pass

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        sender = self._sender
        if sender is not None and sender is not asyncio.current_task() and not sender.done():
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
        await self._shutdown(code, reason)


class QueueSubscriber:
    """In-process subscriber backing `SyncChannel.subscribe` (unbounded queue)."""

    def __init__(self):
        self.queue: asyncio.Queue[CompetitionState] = asyncio.Queue()

    async def deliver(self, division: Division, state: CompetitionState) -> None:
        self.queue.put_nowait(state.model_copy(deep=True))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        return None


class SyncChannel:
    def __init__(self, store: StateStore):
        self.store = store
        self._subscribers: dict[Division, set] = {division: set() for division in Division}
        self._subscribers_lock = asyncio.Lock()
        store.add_listener(self.broadcast)

    async def count(self, division: Division) -> int:
        async with self._subscribers_lock:
            return len(self._subscribers[division])

    async def attach(self, division: Division, subscriber) -> bool:
        """Register `subscriber` and hand it the current snapshot.

        Both happen under the division lock, so no mutation can land in between
        (no missed change, no change delivered before the snapshot).
        """
        async with self.store.lock(division):
            async with self._subscribers_lock:
                self._subscribers[division].add(subscriber)
                total = len(self._subscribers[division])
            logger.info("Viewer attached to %s, total: %s", division.value, total)
            return await self._deliver_one(division, subscriber, self.store.get_state(division))

    async def detach(self, division: Division, subscriber) -> None:
        async with self._subscribers_lock:
            self._subscribers[division].discard(subscriber)
            remaining = len(self._subscribers[division])
        logger.info("Viewer detached from %s, remaining: %s", division.value, remaining)

    async def send_snapshot(self, division: Division, subscriber) -> bool:
        """Answer a REQUEST_STATE handshake for one subscriber."""
        async with self.store.lock(division):
            return await self._deliver_one(division, subscriber, self.store.get_state(division))

    async def broadcast(self, division: Division, state: CompetitionState) -> None:
        """Send the full state to every subscriber of `division`; drop the ones that fail."""
        async with self._subscribers_lock:
            subscribers = list(self._subscribers[division])

        dead = []
        for subscriber in subscribers:
            if not await self._deliver_one(division, subscriber, state):
                dead.append(subscriber)

        if dead:
            async with self._subscribers_lock:
                for subscriber in dead:
                    self._subscribers[division].discard(subscriber)

    async def subscribe(self, division: Division) -> AsyncIterator[CompetitionState]:
        """Live feed: the current snapshot first, then every later change in order."""
        subscriber = QueueSubscriber()
        await self.attach(division, subscriber)
        try:
            while True:
                yield await subscriber.queue.get()
        finally:
            await self.detach(division, subscriber)

    async def _deliver_one(self, division: Division, subscriber, state: CompetitionState) -> bool:
        try:
            await subscriber.deliver(division, state)
            return True
        except asyncio.QueueFull:
            logger.warning(
                "Outbound queue full for %s viewer, disconnecting slow client", division.value
            )
            await subscriber.close(code=1008, reason="Send queue full")
        except asyncio.TimeoutError:
            logger.warning(
                "Send timeout for %s viewer, disconnecting slow client", division.value
            )
            await subscriber.close(code=1008, reason="Send timeout")
        except Exception as exc:
            logger.debug("Broadcast error to %s viewer: %s", division.value, exc)
        return False
