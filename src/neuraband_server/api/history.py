"""Stored biosignal history and recording sessions."""

import asyncio
from collections.abc import Sequence
from typing import Annotated, Any

import structlog
from litestar import Router, WebSocket, get, websocket
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK

from neuraband_server.api.monitor import serve_until_disconnect, snapshot_to_dict
from neuraband_server.core.auth import api_key_guard
from neuraband_server.core.config import settings
from neuraband_server.schemas.settings import DEFAULT_SETTINGS
from neuraband_server.services.monitor import MonitorRegistry
from neuraband_server.services.projection import LiveHistory
from neuraband_server.services.store import BiosignalRecord, SQLAlchemyStore

logger = structlog.get_logger()


def load_history(
    records: Sequence[BiosignalRecord], registry: MonitorRegistry, user_id: str
) -> LiveHistory:
    """History view using the live monitor's windows and settings."""
    monitor = registry.get(user_id)
    return LiveHistory(
        records,
        capacities=registry.capacities,
        settings=monitor.device_settings if monitor else DEFAULT_SETTINGS,
        device_id=monitor.device_id if monitor else None,
    )


def history_to_dict(user_id: str, history: LiveHistory) -> dict[str, Any]:
    snapshot = history.snapshot()
    return {
        "user_id": user_id,
        "count": history.count,
        "snapshot": snapshot_to_dict(snapshot) if snapshot else None,
    }


@get("/users/{user_id:str}/history", status_code=HTTP_200_OK)
async def get_history(
    current_user: str,
    store: SQLAlchemyStore,
    registry: MonitorRegistry,
    limit: Annotated[int | None, Parameter(query="limit", ge=1, le=1000)] = None,
) -> dict[str, Any]:
    """Dashboard snapshot rebuilt from the newest stored rows.

    Rows are replayed oldest first through the same windows as the live
    view. ``snapshot`` is null when nothing has been recorded yet.
    """
    records = await store.recent_biosignals(current_user, limit=limit or settings.history_limit)
    return history_to_dict(current_user, load_history(records, registry, current_user))


@websocket("/users/{user_id:str}/history/stream")
async def stream_history(
    socket: WebSocket,
    current_user: str,
    store: SQLAlchemyStore,
    registry: MonitorRegistry,
) -> None:
    """Send the history view, then resend it whenever a new row is stored.

    The store subscription is taken before the initial query so no row falls
    between the two; rows the query already returned are skipped. Several
    rows arriving between sends collapse into one message.
    """
    await socket.accept()
    log = logger.bind(component="history_stream", user_id=current_user)
    pending: list[BiosignalRecord] = []
    history: LiveHistory | None = None
    changed = asyncio.Event()

    def on_record(record: BiosignalRecord) -> None:
        if history is None:
            pending.append(record)
        elif history.add(record):
            changed.set()

    async def forward() -> None:
        while True:
            await changed.wait()
            changed.clear()
            await socket.send_json(history_to_dict(current_user, history))

    unsubscribe = store.subscribe(current_user, on_record)
    log.info("History stream client connected")
    try:
        records = await store.recent_biosignals(current_user, limit=settings.history_limit)
        history = load_history(records, registry, current_user)
        for record in pending:
            history.add(record)
        await socket.send_json(history_to_dict(current_user, history))
        await serve_until_disconnect(socket, forward, log)
    finally:
        unsubscribe()


@get("/users/{user_id:str}/sessions", status_code=HTTP_200_OK)
async def list_sessions(
    current_user: str,
    store: SQLAlchemyStore,
    limit: Annotated[int, Parameter(query="limit", default=50, ge=1, le=500)] = 50,
) -> list[dict[str, Any]]:
    """Recording sessions for a user, newest first."""
    records = await store.list_sessions(current_user, limit=limit)

    return [
        {
            "id": r.id,
            "device_id": r.device_id,
            "start_time": r.start_time.isoformat(),
            "end_time": r.end_time.isoformat() if r.end_time else None,
            "is_open": r.is_open,
        }
        for r in records
    ]


history_router = Router(
    path="/",
    guards=[api_key_guard],
    route_handlers=[get_history, stream_history, list_sessions],
)
