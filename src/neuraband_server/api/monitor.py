"""Live monitor endpoints: device selection, feed control and snapshots."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from litestar import Router, WebSocket, get, post, websocket
from litestar.exceptions import (
    ClientException,
    NotFoundException,
    WebSocketDisconnect,
)
from litestar.status_codes import HTTP_200_OK
from pydantic import BaseModel, Field

from neuraband_server.core.auth import api_key_guard
from neuraband_server.schemas.dashboard import DashboardSnapshot
from neuraband_server.schemas.settings import settings_or_default
from neuraband_server.services.lifecycle import LifecycleError, SessionLifecycle
from neuraband_server.services.monitor import MonitorRegistry
from neuraband_server.services.store import DeviceNotFoundError, SQLAlchemyStore

logger = structlog.get_logger()

# Snapshots buffered per WebSocket client; the oldest is dropped when full
STREAM_BUFFER = 10


class DeviceSelection(BaseModel):
    """Request body for choosing the active device."""

    device_id: str | None = Field(description="Device to monitor, or null to go idle")


def snapshot_to_dict(snapshot: DashboardSnapshot) -> dict[str, Any]:
    """Serialize a snapshot with the dashboard's camelCase keys."""
    return snapshot.model_dump(mode="json", by_alias=True)


def monitor_state(monitor: SessionLifecycle) -> dict[str, Any]:
    """Connection summary returned by the control endpoints."""
    return {
        "device_id": monitor.device_id,
        "connection_status": monitor.status.value,
        "session_id": monitor.session_id,
        "is_playing": monitor.is_playing,
    }


@get("/users/{user_id:str}/monitor", status_code=HTTP_200_OK)
async def get_snapshot(current_user: str, registry: MonitorRegistry) -> dict[str, Any]:
    """Current dashboard snapshot for the user's active device."""
    return snapshot_to_dict(registry.get_or_create(current_user).snapshot())


@post("/users/{user_id:str}/monitor/device", status_code=HTTP_200_OK)
async def select_device(
    current_user: str,
    data: DeviceSelection,
    store: SQLAlchemyStore,
    registry: MonitorRegistry,
) -> dict[str, Any]:
    """Make a device active and connect its feed.

    Switching away from an open session closes it and clears all windows
    before the new feed is requested.
    """
    monitor = registry.get_or_create(current_user)
    if data.device_id is None:
        await monitor.select_device(None)
        return monitor_state(monitor)

    try:
        device = await store.get_device(current_user, data.device_id)
    except DeviceNotFoundError as e:
        raise NotFoundException(str(e)) from e

    await monitor.select_device(device.id, settings_or_default(device.settings))
    return monitor_state(monitor)


@post("/users/{user_id:str}/monitor/connect", status_code=HTTP_200_OK)
async def connect(current_user: str, registry: MonitorRegistry) -> dict[str, Any]:
    """Reconnect the feed for the active device (retry after a drop)."""
    monitor = registry.get_or_create(current_user)
    try:
        await monitor.connect()
    except LifecycleError as e:
        raise ClientException(str(e)) from e
    return monitor_state(monitor)


@post("/users/{user_id:str}/monitor/disconnect", status_code=HTTP_200_OK)
async def disconnect(current_user: str, registry: MonitorRegistry) -> dict[str, Any]:
    """Stop the feed and close the session."""
    monitor = registry.get_or_create(current_user)
    await monitor.disconnect()
    return monitor_state(monitor)


@post("/users/{user_id:str}/monitor/pause", status_code=HTTP_200_OK)
async def pause(current_user: str, registry: MonitorRegistry) -> dict[str, Any]:
    """Drop incoming samples until resumed."""
    monitor = registry.get_or_create(current_user)
    monitor.pause()
    return monitor_state(monitor)


@post("/users/{user_id:str}/monitor/resume", status_code=HTTP_200_OK)
async def resume(current_user: str, registry: MonitorRegistry) -> dict[str, Any]:
    """Accept samples again."""
    monitor = registry.get_or_create(current_user)
    monitor.resume()
    return monitor_state(monitor)


async def serve_until_disconnect(
    socket: WebSocket,
    forward: Callable[[], Awaitable[None]],
    log: Any,
) -> None:
    """Run ``forward`` as the sender until the client goes away.

    Client messages are ignored; receiving is what surfaces the disconnect.
    A sender that already failed (for example on a closed socket) is logged
    instead of being re-raised during teardown.
    """
    sender = asyncio.create_task(forward())
    try:
        while True:
            await socket.receive_data(mode="text")
    except WebSocketDisconnect:
        log.info("Stream client disconnected")
    finally:
        sender.cancel()
        (outcome,) = await asyncio.gather(sender, return_exceptions=True)
        if isinstance(outcome, Exception):
            log.warning("Stream sender failed", error=str(outcome))


@websocket("/users/{user_id:str}/stream")
async def stream_snapshots(
    socket: WebSocket,
    current_user: str,
    registry: MonitorRegistry,
) -> None:
    """Push every new snapshot to the client as JSON.

    The current snapshot is sent right after the handshake. The subscription
    is removed when the client goes away.
    """
    await socket.accept()
    monitor = registry.get_or_create(current_user)
    queue: asyncio.Queue[DashboardSnapshot] = asyncio.Queue(maxsize=STREAM_BUFFER)

    def on_snapshot(snapshot: DashboardSnapshot) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(snapshot)

    async def forward() -> None:
        while True:
            snapshot = await queue.get()
            await socket.send_json(snapshot_to_dict(snapshot))

    unsubscribe = monitor.subscribe(on_snapshot)
    log = logger.bind(component="snapshot_stream", user_id=current_user)
    log.info("Stream client connected")
    try:
        await socket.send_json(snapshot_to_dict(monitor.snapshot()))
        await serve_until_disconnect(socket, forward, log)
    finally:
        unsubscribe()


monitor_router = Router(
    path="/",
    guards=[api_key_guard],
    route_handlers=[
        get_snapshot,
        select_device,
        connect,
        disconnect,
        pause,
        resume,
        stream_snapshots,
    ],
)
