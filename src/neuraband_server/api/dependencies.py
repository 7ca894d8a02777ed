"""Dependency providers for route handlers.

The store and monitor registry are created in the application lifespan and
kept on ``app.state``; handlers receive them as injected arguments.
"""

from litestar.datastructures import State
from litestar.di import Provide
from litestar.exceptions import NotFoundException

from neuraband_server.services.monitor import MonitorRegistry
from neuraband_server.services.store import SQLAlchemyStore

STORE_STATE_KEY = "store"
REGISTRY_STATE_KEY = "registry"


def provide_store(state: State) -> SQLAlchemyStore:
    """Durable store from application state."""
    return state[STORE_STATE_KEY]


def provide_registry(state: State) -> MonitorRegistry:
    """Monitor registry from application state."""
    return state[REGISTRY_STATE_KEY]


async def provide_user_id(user_id: str, store: SQLAlchemyStore) -> str:
    """Resolve the path user id, rejecting unknown users.

    Raises:
        NotFoundException: If the user does not exist
    """
    if await store.get_user(user_id) is None:
        raise NotFoundException(f"User {user_id} not found")
    return user_id


dependencies = {
    "store": Provide(provide_store, sync_to_thread=False),
    "registry": Provide(provide_registry, sync_to_thread=False),
    "current_user": Provide(provide_user_id),
}
