"""REST and WebSocket interface for browser clients."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from . import api
from .client import AisegClient
from .const import (
    CATEGORY_CIRCUITS,
    CATEGORY_DEVICES,
    CATEGORY_REALTIME,
    CATEGORY_TOTALS,
)
from .coordinator import AisegDataCoordinator
from .models import ControlCommand, UnknownControlActionError
from .nicknames import NicknameStore
from .websocket import AisegBroadcastManager

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .config import Settings

_LOGGER = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_BAD_GATEWAY = 502


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def create_app(
    settings: Settings,
    client: AisegClient | None = None,
    session: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the dashboard application.

    Args:
        settings: Dashboard settings.
        client: Appliance client; built from settings when omitted.
        session: HTTP session for the built client; created (and closed on
            shutdown) when omitted.

    Returns:
        The FastAPI application.

    """
    owns_session = client is None and session is None
    if client is None:
        session = session or api.create_session_client(settings.timeout)
        client = AisegClient(
            session, settings.base_url, settings.username, settings.password
        )

    nicknames = NicknameStore(settings.nicknames_file)
    coordinator = AisegDataCoordinator(client, nicknames)
    manager = AisegBroadcastManager(coordinator)

    @contextlib.asynccontextmanager
    async def lifespan(fastapi_app: FastAPI) -> AsyncIterator[None]:
        prewarm_task = None
        if settings.prewarm:
            prewarm_task = asyncio.create_task(
                coordinator.async_prewarm(), name="aiseg_prewarm"
            )
        fastapi_app.state.prewarm_task = prewarm_task
        try:
            yield
        finally:
            if prewarm_task is not None:
                prewarm_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await prewarm_task
            await manager.async_shutdown()
            if owns_session and session is not None:
                await session.aclose()

    app = FastAPI(title="AiSEG2 Dashboard", lifespan=lifespan)
    app.state.client = client
    app.state.coordinator = coordinator
    app.state.manager = manager
    app.state.nicknames = nicknames

    async def read_category(category: str, route: str) -> Any:
        try:
            return await coordinator.async_get(category)
        except (api.AisegApiClientError, httpx.HTTPError) as err:
            _LOGGER.error("GET %s: %s", route, err)
            return _error(str(err), HTTP_BAD_GATEWAY)

    @app.get("/api/realtime")
    async def get_realtime() -> Any:
        return await read_category(CATEGORY_REALTIME, "/api/realtime")

    @app.get("/api/totals")
    async def get_totals() -> Any:
        return await read_category(CATEGORY_TOTALS, "/api/totals")

    @app.get("/api/devices")
    async def get_devices() -> Any:
        return await read_category(CATEGORY_DEVICES, "/api/devices")

    @app.get("/api/circuits")
    async def get_circuits() -> Any:
        return await read_category(CATEGORY_CIRCUITS, "/api/circuits")

    @app.post("/api/devices/control")
    async def control_device(request: Request) -> Any:
        body = await _read_json(request)
        try:
            command = ControlCommand.from_payload(body)
        except UnknownControlActionError:
            _LOGGER.warning("Rejected control request: %s", body.get("action"))
            return _error("unknown action", HTTP_BAD_REQUEST)

        try:
            return await client.async_execute(command)
        except (api.AisegApiClientError, httpx.HTTPError) as err:
            _LOGGER.error("POST /api/devices/control: %s", err)
            return _error(str(err), HTTP_BAD_GATEWAY)
        finally:
            manager.schedule_device_refresh()

    @app.get("/api/nicknames")
    async def get_nicknames() -> dict[str, str]:
        return nicknames.get_all()

    @app.post("/api/nicknames")
    async def set_nickname(request: Request) -> Any:
        body = await _read_json(request)
        node_id = body.get("nodeId")
        eoj = body.get("eoj")
        if not node_id or not eoj:
            return _error("nodeId and eoj required", HTTP_BAD_REQUEST)

        nicknames.set(str(node_id), str(eoj), body.get("name"))
        coordinator.reapply_nicknames()
        return {"ok": True}

    @app.websocket("/ws")
    async def push_channel(websocket: WebSocket) -> None:
        await websocket.accept()
        await manager.async_connect(websocket)
        try:
            with contextlib.suppress(WebSocketDisconnect):
                while True:
                    text = await websocket.receive_text()
                    await manager.async_handle_message(websocket, text)
        finally:
            await manager.async_disconnect(websocket)

    public_dir = Path(settings.public_dir)
    if public_dir.is_dir():
        app.mount("/", StaticFiles(directory=public_dir, html=True), name="public")
    else:
        _LOGGER.debug("Static UI directory %s not found, not serving it", public_dir)

    return app
