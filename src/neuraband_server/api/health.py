"""Health check endpoint."""

from litestar import Router, get
from litestar.datastructures import State
from litestar.status_codes import HTTP_200_OK

from neuraband_server import __version__
from neuraband_server.api.dependencies import REGISTRY_STATE_KEY
from neuraband_server.core.config import settings


@get("/health", status_code=HTTP_200_OK, sync_to_thread=False)
def health_check(state: State) -> dict[str, str | int]:
    """Health check endpoint.

    Returns:
        Status, version, feed mode and number of live monitors
    """
    registry = state.get(REGISTRY_STATE_KEY)
    return {
        "status": "ok",
        "version": __version__,
        "feed_mode": settings.feed_mode.value,
        "monitors": len(registry) if registry is not None else 0,
    }


health_router = Router(path="/", route_handlers=[health_check])
