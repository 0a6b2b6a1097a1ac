"""
In-memory competition state (authoritative at runtime), one CompetitionState per division.

Key design points:
- The store is an injectable service; the app keeps a single instance on `app.state`
- Every mutation runs under the division's asyncio.Lock and swaps in a fresh copy of the state
- After a mutation the full new state is handed to every listener while the lock is still
  held, so listeners see the changes of one division in the order they were applied
- Callers only ever receive deep copies; direct mutation cannot bypass the broadcast
"""

# -------------------- Standard library imports --------------------
import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Sequence

# -------------------- Local application imports --------------------
from gymscore.core import (
    CompetitionState,
    Division,
    ImportResult,
    coerce_score,
    parse_rows,
)
from gymscore.storage import json_store

logger = logging.getLogger(__name__)

Listener = Callable[[Division, CompetitionState], Awaitable[None]]


class CompetitorNotFound(LookupError):
    """Score update for an id that is not in the division (usually a stale client view)."""

    def __init__(self, division: Division, competitor_id: str):
        self.division = division
        self.competitor_id = competitor_id
        super().__init__(f"competitor {competitor_id!r} not found in {division.value}")


class UnknownApparatus(ValueError):
    def __init__(self, division: Division, event: str):
        self.division = division
        self.event = event
        super().__init__(f"{event!r} is not an apparatus of {division.value}")


class StateStore:
    def __init__(self, *, persist: bool = False):
        self._states: dict[Division, CompetitionState] = {
            division: CompetitionState() for division in Division
        }
        self._locks: dict[Division, asyncio.Lock] = {
            division: asyncio.Lock() for division in Division
        }
        self._listeners: list[Listener] = []
        # Write a local JSON snapshot + audit event on every mutation.
        self.persist = persist

    # -------------------- read side --------------------
    def lock(self, division: Division) -> asyncio.Lock:
        return self._locks[division]

    def get_state(self, division: Division) -> CompetitionState:
        return self._states[division].model_copy(deep=True)

    def competitor_counts(self) -> dict[str, int]:
        return {division.value: len(state.competitors) for division, state in self._states.items()}

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # -------------------- mutations --------------------
    async def apply_csv_import(
        self, division: Division, rows: Iterable[Sequence[str]]
    ) -> ImportResult:
        """Replace the competitor list with the parsed rows (header row first)."""
        competitors, errors = parse_rows(rows, division)
        async with self._locks[division]:
            state = self.get_state(division)
            if competitors:
                state.competitors = competitors
                state = await self._commit(
                    division,
                    state,
                    "IMPORT_CSV",
                    {"imported": len(competitors), "errors": len(errors)},
                )
            else:
                logger.warning(
                    "CSV import for %s produced no competitors (%s errors); state kept",
                    division.value,
                    len(errors),
                )
        if errors:
            logger.info(
                "CSV import for %s: %s rows skipped",
                division.value,
                len(errors),
            )
        return ImportResult(state=state, errors=errors, imported=len(competitors))

    async def update_score(
        self, division: Division, competitor_id: str, event: str, value
    ) -> CompetitionState:
        if event not in division.apparatus:
            raise UnknownApparatus(division, event)
        async with self._locks[division]:
            state = self.get_state(division)
            competitor = state.find(competitor_id)
            if competitor is None:
                raise CompetitorNotFound(division, competitor_id)
            competitor.scores[event] = coerce_score(value)
            competitor.recompute_total(division.apparatus)
            logger.info(
                "Updated score for %s: %s = %s (total %s)",
                competitor_id,
                event,
                competitor.scores[event],
                competitor.total,
            )
            return await self._commit(
                division,
                state,
                "UPDATE_SCORE",
                {"competitorId": competitor_id, "event": event, "value": competitor.scores[event]},
            )

    async def set_competition_name(self, division: Division, name: str) -> CompetitionState:
        async with self._locks[division]:
            state = self.get_state(division)
            state.competitionName = (name or "").strip()
            return await self._commit(
                division, state, "SET_COMPETITION_NAME", {"competitionName": state.competitionName}
            )

    async def replace_state(
        self, division: Division, new_state: CompetitionState, action: str = "LOAD"
    ) -> CompetitionState:
        """Swap in a whole state (startup/manual reload); totals are recomputed."""
        async with self._locks[division]:
            state = new_state.model_copy(deep=True)
            for competitor in state.competitors:
                competitor.recompute_total(division.apparatus)
            state.version = self._states[division].version
            return await self._commit(
                division, state, action, {"competitors": len(state.competitors)}
            )

    async def restore(self, states: dict[Division, CompetitionState]) -> int:
        """Install snapshots without notifying listeners (startup only)."""
        restored = 0
        for division, state in states.items():
            async with self._locks[division]:
                self._states[division] = state.model_copy(deep=True)
                restored += 1
        return restored

    # -------------------- helpers --------------------
    async def _commit(
        self, division: Division, state: CompetitionState, action: str, payload: dict
    ) -> CompetitionState:
        # Caller holds self._locks[division].
        state.version = self._states[division].version + 1
        self._states[division] = state
        if self.persist:
            await self._persist(division, state, action, payload)
        snapshot = self.get_state(division)
        for listener in list(self._listeners):
            try:
                await listener(division, snapshot)
            except Exception as exc:
                logger.error(
                    "State listener failed for %s after %s: %s",
                    division.value,
                    action,
                    exc,
                    exc_info=True,
                )
        return self.get_state(division)

    async def _persist(
        self, division: Division, state: CompetitionState, action: str, payload: dict
    ) -> None:
        try:
            await json_store.save_division_state(division, state)
        except OSError as exc:
            logger.error("Failed to write %s snapshot: %s", division.value, exc)
        event = json_store.build_audit_event(
            action=action, payload=payload, division=division, state=state
        )
        await json_store.append_audit_event(event)
