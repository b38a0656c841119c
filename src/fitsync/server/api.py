"""Local status API for app front-ends: REST endpoints plus a WebSocket status feed."""

from __future__ import annotations

import asyncio
import contextlib
import json
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from fitsync.server.rpc import ConnectivityChange, record_change

if TYPE_CHECKING:
    from fitsync.server.rpc import DaemonState
    from fitsync.sync.status import SyncState

log = structlog.get_logger(__name__)


class ConnectionManager:
    """Manages WebSocket connections and broadcasts status updates."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    @property
    def count(self) -> int:
        return len(self._connections)

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections.add(ws)

    def disconnect(self, ws: WebSocket) -> None:
        self._connections.discard(ws)

    async def broadcast(self, message: dict) -> None:
        payload = json.dumps(message)
        dead: list[WebSocket] = []
        for ws in self._connections:
            try:
                await ws.send_text(payload)
            except (WebSocketDisconnect, RuntimeError):
                dead.append(ws)
        for ws in dead:
            self._connections.discard(ws)


def create_api_app(state: DaemonState) -> FastAPI:
    """Build the FastAPI application for the local status API."""
    manager = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ARG001, ANN001
        loop = asyncio.get_running_loop()
        updates: asyncio.Queue[dict] = asyncio.Queue()

        def _on_status(sync_state: SyncState) -> None:
            # Engine callbacks may fire outside this loop's thread.
            loop.call_soon_threadsafe(updates.put_nowait, sync_state.to_dict())

        unsubscribe = state.engine.broadcaster.subscribe(_on_status) if state.engine else None

        async def _broadcast_loop() -> None:
            while True:
                data = await updates.get()
                await manager.broadcast({"type": "status", "data": data})

        task = asyncio.create_task(_broadcast_loop())
        yield
        if unsubscribe:
            unsubscribe()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    app = FastAPI(title="fitsync-api", docs_url=None, redoc_url=None, lifespan=lifespan)

    def _no_engine() -> JSONResponse:
        return JSONResponse({"error": "sync engine not running"}, status_code=503)

    # -- REST endpoints -------------------------------------------------------

    @app.get("/api/status")
    async def api_status() -> dict:
        return state.get_status()

    @app.get("/api/dataset")
    async def api_dataset():  # noqa: ANN201
        if not state.engine:
            return _no_engine()
        return state.engine.get_dataset().model_dump(mode="json")

    @app.get("/api/history")
    async def api_history(
        limit: int = Query(default=20, ge=1, le=100),
        offset: int = Query(default=0, ge=0),
    ):  # noqa: ANN201
        if not state.history:
            return JSONResponse({"error": "history not available"}, status_code=503)
        items = await state.history.list_attempts(limit=limit, offset=offset)
        total = await state.history.count_attempts()
        return {
            "items": [r.model_dump(mode="json") for r in items],
            "total": total,
            "limit": limit,
            "offset": offset,
        }

    @app.post("/api/changes")
    async def api_record_change(body: dict):  # noqa: ANN201
        if not state.engine:
            return _no_engine()
        response = record_change(state, body)
        if not response.ok:
            return JSONResponse({"error": response.error}, status_code=422)
        return response.data

    @app.post("/api/sync")
    async def api_sync_now():  # noqa: ANN201
        if not state.scheduler:
            return JSONResponse({"error": "sync not configured"}, status_code=503)
        state.scheduler.trigger_now()
        return {"message": "sync triggered"}

    @app.post("/api/connectivity")
    async def api_connectivity(body: ConnectivityChange):  # noqa: ANN201
        if not state.engine:
            return _no_engine()
        state.engine.set_connectivity(body.online)
        return state.engine.get_status().to_dict()

    # -- WebSocket ------------------------------------------------------------

    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket) -> None:
        await manager.connect(ws)
        if state.engine:
            await ws.send_text(json.dumps({"type": "status", "data": state.engine.get_status().to_dict()}))
        try:
            while True:
                await ws.receive_text()
        except WebSocketDisconnect:
            manager.disconnect(ws)

    return app
