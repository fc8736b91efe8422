"""
FastAPI application — local focus monitor API.
Runs on http://127.0.0.1:8766 by default.

The monitor and its stores live on app.state so that each call to
create_app() produces a fully independent instance with no shared
module-level globals. This makes test isolation straightforward.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ..clock import Clock, now_ms
from ..config import config
from ..monitor import FocusMonitor
from ..settings import SettingsStore
from ..storage import JsonFileStore, KeyValueStore
from ..telemetry.history import ActivityHistory

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Background tick loop
# ---------------------------------------------------------------------------

async def _tick_loop(monitor: FocusMonitor, interval_s: float) -> None:
    while True:
        await asyncio.sleep(interval_s)
        try:
            await monitor.tick()
        except Exception:
            logger.exception("Periodic tick failed")


# ---------------------------------------------------------------------------
# Lifespan: builds and tears down all per-app state
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    data_dir: Path = app.state.data_dir
    data_dir.mkdir(parents=True, exist_ok=True)

    store: KeyValueStore = app.state.store or JsonFileStore(data_dir / config.state_file)
    app.state.history = ActivityHistory(data_dir / config.history_db)
    app.state.monitor = FocusMonitor(
        store,
        SettingsStore(data_dir / "settings.json"),
        history=app.state.history,
        clock=app.state.clock,
        inactivity_ceiling_ms=config.inactivity_ceiling_ms,
        debounce_ms=config.deviation_debounce_ms,
        deviation_history_limit=config.deviation_history_limit,
        history_retention_days=config.history_retention_days,
    )
    await app.state.monitor.start()

    tick_task = asyncio.create_task(_tick_loop(app.state.monitor, app.state.tick_interval_s))

    yield

    tick_task.cancel()
    try:
        await tick_task
    except asyncio.CancelledError:
        pass
    await app.state.monitor.shutdown()


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    data_dir: Optional[Path] = None,
    clock: Clock = now_ms,
    store: Optional[KeyValueStore] = None,
    tick_interval_s: Optional[float] = None,
) -> FastAPI:
    app = FastAPI(
        title="FocusGuard",
        description="Local work/break timer and focus reminder API",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.data_dir = Path(data_dir) if data_dir is not None else config.data_dir
    app.state.clock = clock
    app.state.store = store
    app.state.tick_interval_s = tick_interval_s if tick_interval_s is not None else config.tick_interval_s

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["null"],
        allow_origin_regex=r"^chrome-extension://.*$",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .routers import activity, focus, history, notifications, reminders, settings, timer

    app.include_router(timer.router)
    app.include_router(focus.router)
    app.include_router(activity.router)
    app.include_router(notifications.router)
    app.include_router(reminders.router)
    app.include_router(settings.router)
    app.include_router(history.router)

    @app.get("/health")
    def health(request: Request):
        monitor = getattr(request.app.state, "monitor", None)
        if monitor is None:
            return {"status": "starting", "version": VERSION}
        return {
            "status": "ok" if monitor.persistence_ok else "degraded",
            "version": VERSION,
            "timer_mode": monitor.timer.mode.value,
        }

    return app


app = create_app()
