"""Litestar application factory."""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import structlog
from litestar import Litestar
from litestar.openapi import OpenAPIConfig
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from neuraband_server import __version__
from neuraband_server.api import api_routers
from neuraband_server.api.dependencies import (
    REGISTRY_STATE_KEY,
    STORE_STATE_KEY,
    dependencies,
)
from neuraband_server.core.config import settings
from neuraband_server.core.database import async_session_maker, close_database, init_database
from neuraband_server.services.feed import FeedFactory, build_feed_factory
from neuraband_server.services.monitor import MonitorRegistry
from neuraband_server.services.store import SQLAlchemyStore


def configure_logging(level: str = settings.log_level) -> None:
    """Configure structured JSON logging on top of stdlib logging."""
    logging.basicConfig(format="%(message)s", level=level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()

logger = structlog.get_logger()


def build_lifespan(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    feed_factory: FeedFactory | None = None,
) -> Callable[[Litestar], AbstractAsyncContextManager[None]]:
    """Build the application lifespan.

    Args:
        session_factory: Session factory for the store. When omitted the
            configured database is used and its pool is managed here.
        feed_factory: Feed builder. Defaults to the one selected by
            ``FEED_MODE``.
    """
    owns_database = session_factory is None

    @asynccontextmanager
    async def lifespan(app: Litestar) -> AsyncIterator[None]:
        """Application lifespan manager.

        Handles startup and shutdown tasks:
        - Verify database migrations on startup
        - Stamp sessions left open by an unclean shutdown
        - Create the monitor registry
        - Stop every live feed and close the pool on shutdown
        """
        logger.info(
            "Starting neuraband-server",
            version=__version__,
            feed_mode=settings.feed_mode.value,
        )

        if owns_database:
            await init_database()
            logger.info("Database initialized")

        store = SQLAlchemyStore(session_factory or async_session_maker)
        await store.close_open_sessions()

        registry = MonitorRegistry.from_settings(
            settings, store, feed_factory or build_feed_factory(settings)
        )
        app.state[STORE_STATE_KEY] = store
        app.state[REGISTRY_STATE_KEY] = registry

        try:
            yield
        finally:
            await registry.shutdown()
            if owns_database:
                await close_database()
            logger.info("Shutdown complete")

    return lifespan


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    feed_factory: FeedFactory | None = None,
) -> Litestar:
    """Create Litestar application.

    Args:
        session_factory: Optional session factory (tests pass an in-memory one)
        feed_factory: Optional feed builder override

    Returns:
        Configured Litestar app instance
    """
    return Litestar(
        route_handlers=api_routers,
        lifespan=[build_lifespan(session_factory, feed_factory)],
        dependencies=dependencies,
        openapi_config=OpenAPIConfig(
            title="neuraband-server API",
            version=__version__,
            description="Live biosignal monitoring for NeuraBand wearables",
        ),
        debug=settings.log_level == "DEBUG",
    )


# Application instance
app = create_app()
