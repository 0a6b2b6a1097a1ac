"""
Spreadsheet bridge client (the external system of record).

The bridge is a script web app sitting in front of the results spreadsheet. It speaks JSON:
- GET  `?gender={division}`                          -> {success, data: {competitionName, players}}
- POST `{gender, action: "save", newState: {...}}`   -> {success, message}
- POST `{gender, action: "archive"}`                 -> {success, message}

Concurrency model:
- A single asyncio.Lock serializes every outbound call (the bridge's sheet quota is global)
- Waiting callers give up after `lock_timeout` seconds with SheetBridgeBusy
- Each HTTP call has its own timeout, so a stuck call cannot hold the lock forever
"""

# -------------------- Standard library imports --------------------
import asyncio
import logging
from contextlib import asynccontextmanager

# -------------------- Third-party imports --------------------
import httpx

# -------------------- Local application imports --------------------
from gymscore.core import CompetitionState, Division, sheet_to_state, state_to_sheet

logger = logging.getLogger(__name__)


class SheetBridgeError(Exception):
    """Outbound call failed; `message` is suitable for showing to the operator."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class SheetBridgeNotConfigured(SheetBridgeError):
    pass


class SheetBridgeBusy(SheetBridgeError):
    pass


class SheetBridge:
    def __init__(
        self,
        url: str,
        *,
        timeout: float = 15.0,
        lock_timeout: float = 30.0,
        load_attempts: int = 3,
        retry_base: float = 1.0,
        include_total: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep=asyncio.sleep,
    ):
        self.url = (url or "").strip()
        self.timeout = timeout
        self.lock_timeout = lock_timeout
        self.load_attempts = max(1, load_attempts)
        self.retry_base = retry_base
        self.include_total = include_total
        self._transport = transport
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "SheetBridge":
        return cls(
            settings.gas_web_app_url,
            timeout=settings.sheet_timeout_sec,
            lock_timeout=settings.sheet_lock_timeout_sec,
            load_attempts=settings.sheet_load_attempts,
            retry_base=settings.sheet_retry_base_sec,
            include_total=settings.sheet_include_total,
            **kwargs,
        )

    @property
    def configured(self) -> bool:
        return bool(self.url)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def _exclusive(self):
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self.lock_timeout)
        except asyncio.TimeoutError:
            raise SheetBridgeBusy(
                f"another spreadsheet call is still running (waited {self.lock_timeout:g}s)"
            ) from None
        try:
            yield
        finally:
            self._lock.release()

    async def _call(self, method: str, **kwargs) -> dict:
        if not self.configured:
            raise SheetBridgeNotConfigured("GAS_WEB_APP_URL is not set")

        async with self._exclusive():
            try:
                # The script host answers with a redirect to the actual content URL.
                async with httpx.AsyncClient(
                    timeout=self.timeout,
                    follow_redirects=True,
                    transport=self._transport,
                ) as client:
                    response = await client.request(method, self.url, **kwargs)
                    response.raise_for_status()
                    result = response.json()
            except httpx.HTTPStatusError as exc:
                raise SheetBridgeError(f"status {exc.response.status_code}") from exc
            except httpx.HTTPError as exc:
                raise SheetBridgeError(f"{type(exc).__name__}: {exc}") from exc
            except ValueError as exc:
                raise SheetBridgeError("bridge returned invalid JSON") from exc

        if not isinstance(result, dict):
            raise SheetBridgeError("bridge returned an unexpected payload")
        if not result.get("success"):
            raise SheetBridgeError(f"bridge returned an error: {result.get('message')}")
        return result

    async def save(self, division: Division, state: CompetitionState) -> str:
        """Push the division to the sheet. Never retried; failures go back to the caller."""
        payload = {
            "gender": division.value,
            "action": "save",
            "newState": state_to_sheet(state, division, include_total=self.include_total),
        }
        result = await self._call("POST", json=payload)
        logger.info(
            "State for %s saved to sheet (%s competitors)",
            division.value,
            len(state.competitors),
        )
        return result.get("message") or "saved"

    async def load(self, division: Division) -> CompetitionState:
        result = await self._call("GET", params={"gender": division.value})
        data = result.get("data")
        if not isinstance(data, dict):
            raise SheetBridgeError(f"invalid data structure from bridge for {division.value}")
        try:
            state = sheet_to_state(data, division)
        except ValueError as exc:
            raise SheetBridgeError(f"invalid data structure from bridge: {exc}") from exc
        logger.info(
            "Loaded %s %s competitors and competition name from sheet",
            len(state.competitors),
            division.value,
        )
        return state

    async def load_with_retry(self, division: Division) -> CompetitionState:
        """`load` with exponential backoff (base, 2*base, 4*base...); the last error is raised."""
        for attempt in range(1, self.load_attempts + 1):
            if attempt > 1:
                delay = (2 ** (attempt - 2)) * self.retry_base
                logger.info(
                    "[Attempt %s/%s] Retrying %s load in %.1fs",
                    attempt,
                    self.load_attempts,
                    division.value,
                    delay,
                )
                await self._sleep(delay)
            try:
                return await self.load(division)
            except SheetBridgeNotConfigured:
                raise
            except SheetBridgeError as exc:
                logger.error(
                    "[Attempt %s/%s] Error loading %s from sheet: %s",
                    attempt,
                    self.load_attempts,
                    division.value,
                    exc.message,
                )
                if attempt == self.load_attempts:
                    raise

    async def archive(self, division: Division) -> str:
        """Ask the bridge to archive the division's sheet (end of competition)."""
        result = await self._call("POST", json={"gender": division.value, "action": "archive"})
        logger.info("Archive request for %s completed", division.value)
        return result.get("message") or "archived"
