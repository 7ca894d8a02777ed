"""Registry of live monitors, one session lifecycle per user.

Built once at application startup and handed to request handlers through
dependency injection.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

import structlog

from neuraband_server.core.config import Settings
from neuraband_server.services.data_logs import list_data_logs
from neuraband_server.services.feed import FeedFactory
from neuraband_server.services.lifecycle import SessionLifecycle
from neuraband_server.services.store import BiosignalStore
from neuraband_server.services.windows import Channel, default_capacities

logger = structlog.get_logger()


class MonitorRegistry:
    """Creates and tracks ``SessionLifecycle`` instances per user.

    Args:
        store: Durable store shared by all lifecycles
        feed_factory: Feed builder (mock or real, chosen at startup)
        capacities: Window capacities for new lifecycles
        data_log_dir: Directory listed in each dashboard's data logs
    """

    def __init__(
        self,
        store: BiosignalStore,
        feed_factory: FeedFactory,
        capacities: Mapping[Channel, int] | None = None,
        data_log_dir: Path | None = None,
    ) -> None:
        self.store = store
        self.feed_factory = feed_factory
        self.capacities = dict(capacities) if capacities else default_capacities()
        self.data_log_dir = data_log_dir
        self._monitors: dict[str, SessionLifecycle] = {}
        self.logger = logger.bind(component="monitor_registry")

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        store: BiosignalStore,
        feed_factory: FeedFactory,
    ) -> MonitorRegistry:
        return cls(
            store=store,
            feed_factory=feed_factory,
            capacities=default_capacities(
                scalar=config.scalar_window,
                hrv=config.hrv_window,
                waveform=config.waveform_window,
            ),
            data_log_dir=config.data_log_dir,
        )

    def get(self, user_id: str) -> SessionLifecycle | None:
        """Existing lifecycle for a user, if any."""
        return self._monitors.get(user_id)

    def get_or_create(self, user_id: str) -> SessionLifecycle:
        """Lifecycle for a user, created in IDLE state on first use."""
        monitor = self._monitors.get(user_id)
        if monitor is None:
            monitor = SessionLifecycle(
                user_id,
                self.store,
                self.feed_factory,
                capacities=self.capacities,
                logs=list_data_logs(self.data_log_dir),
            )
            self._monitors[user_id] = monitor
            self.logger.info("Monitor created", user_id=user_id)
        return monitor

    async def remove(self, user_id: str) -> None:
        """Shut down and forget a user's lifecycle."""
        monitor = self._monitors.pop(user_id, None)
        if monitor is not None:
            await monitor.shutdown()

    async def shutdown(self) -> None:
        """Shut down every lifecycle (application shutdown)."""
        for user_id in list(self._monitors):
            await self.remove(user_id)
        self.logger.info("All monitors stopped")

    def __len__(self) -> int:
        return len(self._monitors)
