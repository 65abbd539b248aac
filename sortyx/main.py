from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sortyx.alerts.monitor import AlertMonitor
from sortyx.api.auth import ensure_admin_user, router as auth_router
from sortyx.api.routes import router as api_router
from sortyx.api.websocket import ConnectionManager, router as websocket_router
from sortyx.config import load_config
from sortyx.models.database import DatabaseManager, utc_now_iso

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()
    db = DatabaseManager(config.database.path)
    db.initialize()
    ensure_admin_user(db, config.auth)

    ws_manager = ConnectionManager()

    async def publish_alert(alert: dict[str, Any]) -> None:
        await ws_manager.broadcast({"type": "alert", "data": alert})

    async def publish_snapshot(snapshots: list[dict[str, Any]]) -> None:
        await ws_manager.broadcast({"type": "snapshot", "data": snapshots})

    monitor = AlertMonitor(config, db, on_alert=publish_alert, on_snapshot=publish_snapshot)
    monitor_task: asyncio.Task[Any] | None = None

    if config.alerts.auto_start_monitor:
        monitor_task = asyncio.create_task(monitor.run_forever())

    app.state.config = config
    app.state.db = db
    app.state.ws_manager = ws_manager
    app.state.monitor = monitor
    app.state.monitor_task = monitor_task

    yield

    if monitor_task:
        monitor_task.cancel()
        with suppress(asyncio.CancelledError):
            await monitor_task

    await monitor.stop()
    db.close()


app = FastAPI(
    title="Sortyx Smart Bin API",
    version="1.0.0",
    description="Fill-level monitoring and threshold alerts for IoT waste bins",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(api_router)
app.include_router(websocket_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "timestamp": utc_now_iso()}
