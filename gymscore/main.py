"""
Gymnastics scoreboard API entrypoint (FastAPI).

This module wires together:
- App startup/shutdown (lifespan): restore local JSON snapshots, then pull each division from the sheet
- Global middleware: request logging + CORS
- Router registration: live commands/feed, rankings + print exports, competitor import, health, audit log
"""

# -------------------- Standard library imports --------------------
import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from time import time

# -------------------- Third-party imports --------------------
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# -------------------- Local application imports --------------------
from gymscore.api.audit import router as audit_router
from gymscore.api.health import router as health_router
from gymscore.api.live import router as live_router
from gymscore.api.rankings import router as rankings_router
from gymscore.api.upload import router as upload_router
from gymscore.config import Settings, settings as default_settings
from gymscore.core import Division
from gymscore.state.channel import SyncChannel
from gymscore.state.store import StateStore
from gymscore.storage import SheetBridge, SheetBridgeError, json_store

# -------------------- Logging --------------------
# Log to stdout (for containers/terminal) and also to a local file (useful on competition day).
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout), logging.FileHandler("gymscore.log")],
)

logger = logging.getLogger(__name__)

# -------------------- Environment configuration --------------------
load_dotenv()

# -------------------- CORS --------------------
# Default origins cover local dev + typical LAN deployments; can be overridden via env vars.
DEFAULT_ORIGINS = "http://localhost:5173,http://localhost:3000"
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", DEFAULT_ORIGINS).split(",")

# Regex allows *.local and common private LAN IP ranges (scoring tablets, venue TVs).
DEFAULT_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1|[a-zA-Z0-9-]+\.local|192\.168\.\d{1,3}\.\d{1,3}|10\.\d{1,3}\.\d{1,3}\.\d{1,3})(:\d+)?$"
ALLOWED_ORIGIN_REGEX = os.getenv("ALLOWED_ORIGIN_REGEX", DEFAULT_ORIGIN_REGEX)


async def load_divisions_from_sheet(
    store: StateStore, bridge: SheetBridge, *, delay: float, gap: float
) -> dict[str, bool]:
    """
    Pull every division from the sheet, one after another.

    Waits `delay` before the first load (the bridge is often cold right after a deploy)
    and `gap` between divisions. A division that fails keeps whatever state it had.
    """
    results: dict[str, bool] = {}
    await asyncio.sleep(delay)
    for i, division in enumerate(Division):
        if i:
            await asyncio.sleep(gap)
        try:
            loaded = await bridge.load_with_retry(division)
        except SheetBridgeError as exc:
            logger.error("Startup load for %s failed: %s", division.value, exc.message)
            results[division.value] = False
            continue
        await store.replace_state(division, loaded, action="LOAD")
        results[division.value] = True
    logger.info("Startup sheet load finished: %s", results)
    return results


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events for the FastAPI application."""

    # -------------------- Startup --------------------
    logger.info("🚀 Gymnastics scoreboard starting up...")
    cfg: Settings = app.state.settings
    store: StateStore = app.state.store
    bridge: SheetBridge = app.state.bridge

    # Local snapshots first, so viewers connecting before the sheet answers see the last known board.
    if store.persist:
        try:
            restored = await store.restore(json_store.load_division_states())
            logger.info("Restored %s division snapshots from %s", restored, json_store.STORAGE_DIR)
        except OSError as exc:
            logger.warning("State preload skipped: %s", exc)

    load_task: asyncio.Task | None = None
    if bridge.configured and cfg.load_from_sheet_on_start:
        load_task = asyncio.create_task(
            load_divisions_from_sheet(
                store,
                bridge,
                delay=cfg.startup_load_delay_sec,
                gap=cfg.startup_load_gap_sec,
            )
        )
    elif not bridge.configured:
        logger.warning("GAS_WEB_APP_URL is not set; running without the spreadsheet")
    app.state.startup_load = load_task

    yield

    # -------------------- Shutdown --------------------
    logger.info("🛑 Gymnastics scoreboard shutting down...")
    if load_task and not load_task.done():
        load_task.cancel()
        try:
            await load_task
        except asyncio.CancelledError:
            pass


def create_app(
    *,
    store: StateStore | None = None,
    bridge: SheetBridge | None = None,
    app_settings: Settings | None = None,
) -> FastAPI:
    """Build the app. Tests pass their own store/bridge; production uses env settings."""
    cfg = app_settings or default_settings
    store = store if store is not None else StateStore(persist=cfg.snapshots_enabled)
    bridge = bridge if bridge is not None else SheetBridge.from_settings(cfg)

    app = FastAPI(title="Gymnastics Scoreboard API", lifespan=lifespan)
    app.state.settings = cfg
    app.state.store = store
    app.state.channel = SyncChannel(store)
    app.state.bridge = bridge
    app.state.startup_load = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_origin_regex=ALLOWED_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request, call_next):
        # Lightweight access log with timing; errors include stack traces for debugging.
        start_time = time()

        logger.info(
            "%s %s - Client: %s",
            request.method,
            request.url.path,
            request.client.host if request.client else "unknown",
        )

        try:
            response = await call_next(request)
            process_time = time() - start_time
            logger.info(
                "%s %s - Status: %s - Duration: %.3fs",
                request.method,
                request.url.path,
                response.status_code,
                process_time,
            )
            return response
        except Exception as exc:
            process_time = time() - start_time
            logger.error(
                "%s %s - Error: %s - Duration: %.3fs",
                request.method,
                request.url.path,
                str(exc),
                process_time,
                exc_info=True,
            )
            raise

    @app.get("/health")
    async def health():
        # Minimal liveness check used by local tooling / reverse proxies.
        return {"status": "ok", "sheet": app.state.bridge.configured}

    # -------------------- Router registration --------------------
    app.include_router(live_router, prefix="/api")
    app.include_router(rankings_router, prefix="/api")
    app.include_router(upload_router, prefix="/api")
    app.include_router(health_router, prefix="/api")
    app.include_router(audit_router, prefix="/api")
    return app


app = create_app()
