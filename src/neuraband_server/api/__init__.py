"""API routes."""

from litestar import Router

from neuraband_server.api.devices import devices_router
from neuraband_server.api.health import health_router
from neuraband_server.api.history import history_router
from neuraband_server.api.monitor import monitor_router
from neuraband_server.api.users import users_router
from neuraband_server.core.config import settings

# Versioned API routers get the configured prefix (/api/v1 by default)
_v1_routers = [
    users_router,
    devices_router,
    monitor_router,  # Live control, snapshot and WebSocket stream
    history_router,
]

api_v1_router = Router(path=settings.api_prefix, route_handlers=_v1_routers)

# - health_router: /health - no auth needed, no version prefix
# - api_v1_router: /api/v1/* - all user endpoints
api_routers = [health_router, api_v1_router]

__all__ = ["api_routers"]
