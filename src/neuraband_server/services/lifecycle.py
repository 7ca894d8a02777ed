"""Session and connection lifecycle for one user's active device.

State machine:

    IDLE --select_device--> CONNECTING --handshake ok--> OPEN
      ^                         |                          |
      |                         +--handshake failed--+     | feed error / disconnect
      |                                              v     v
      +------select_device(None)----------------- CLOSED <-+
                                                     |
                                                     +--connect / select_device--> CONNECTING

Everything runs on one asyncio event loop. Frames from the single active feed
are handled one at a time in arrival order by one pump task, so window
appends are never concurrent. Durable writes are fire-and-forget tasks; a
generation counter, bumped on every connect and close, keeps their
completions (and a late session insert) from touching state that belongs to
a newer or closed session.

The lifecycle exclusively owns the window store and session state. Consumers
read immutable ``DashboardSnapshot`` objects, either on demand via
``snapshot()`` or pushed to listeners registered with ``subscribe()``.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

import structlog

from neuraband_server.schemas.dashboard import ConnectionStatus, DashboardSnapshot, DataLogFile
from neuraband_server.schemas.sample import Sample, SampleDecodeError, decode_sample
from neuraband_server.schemas.settings import DEFAULT_SETTINGS, DeviceSettingsConfig
from neuraband_server.services.errors import ErrorClassifier
from neuraband_server.services.feed import Feed, FeedFactory
from neuraband_server.services.projection import Telemetry, project_dashboard
from neuraband_server.services.store import BiosignalStore
from neuraband_server.services.windows import Channel, RollingWindowStore, WindowSnapshot

logger = structlog.get_logger()

SnapshotListener = Callable[[DashboardSnapshot], None]

_ACTIVE = (ConnectionStatus.CONNECTING, ConnectionStatus.OPEN)


class LifecycleError(RuntimeError):
    """Raised for operations that are invalid in the current state."""


@dataclass
class LifecycleStats:
    """Counters for the current lifecycle (not reset between sessions)."""

    accepted: int = 0
    dropped_paused: int = 0
    discarded_closed: int = 0
    decode_errors: int = 0
    persisted: int = 0
    persist_failures: int = 0
    sessions_opened: int = 0


class SessionLifecycle:
    """Feed, session and window state for one user.

    Args:
        user_id: Owning user
        store: Durable store for session and biosignal rows
        feed_factory: Builds a feed for a device id
        capacities: Window capacity per channel (fixed for this lifecycle)
        logs: Data log listing included in snapshots
    """

    def __init__(
        self,
        user_id: str,
        store: BiosignalStore,
        feed_factory: FeedFactory,
        *,
        capacities: Mapping[Channel, int] | None = None,
        logs: Sequence[DataLogFile] = (),
    ) -> None:
        self.user_id = user_id
        self.store = store
        self.feed_factory = feed_factory
        self.stats = LifecycleStats()

        self._windows = RollingWindowStore(capacities)
        self._status = ConnectionStatus.IDLE
        self._device_id: str | None = None
        self._device_settings: DeviceSettingsConfig = DEFAULT_SETTINGS
        self._session_id: str | None = None
        self._feed: Feed | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._writes: set[asyncio.Task[None]] = set()
        self._generation = 0
        self._is_playing = True
        self._telemetry = Telemetry()
        self._logs = tuple(logs)
        self._listeners: list[SnapshotListener] = []
        self._snapshot: DashboardSnapshot | None = None
        self._closed = asyncio.Event()
        self._classifier = ErrorClassifier()
        self.logger = logger.bind(component="session_lifecycle", user_id=user_id)

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def device_id(self) -> str | None:
        return self._device_id

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def device_settings(self) -> DeviceSettingsConfig:
        return self._device_settings

    @property
    def pending_writes(self) -> int:
        return len(self._writes)

    def windows(self) -> WindowSnapshot:
        """Read-only copy of the window store."""
        return self._windows.snapshot()

    def snapshot(self) -> DashboardSnapshot:
        """Current dashboard projection."""
        if self._snapshot is None:
            self._snapshot = self._project()
        return self._snapshot

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a listener for new snapshots.

        Returns:
            Callable that removes the registration
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        self._snapshot = self._project()
        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception as e:
                self.logger.exception("Snapshot listener failed", error=str(e))

    def _project(self) -> DashboardSnapshot:
        return project_dashboard(
            self._windows.snapshot(),
            settings=self._device_settings,
            telemetry=self._telemetry,
            device_id=self._device_id,
            connection_status=self._status,
            is_playing=self._is_playing,
            logs=self._logs,
        )

    # ------------------------------------------------------------------
    # Device and settings
    # ------------------------------------------------------------------

    async def select_device(
        self,
        device_id: str | None,
        settings: DeviceSettingsConfig | None = None,
    ) -> None:
        """Make a device active and connect its feed.

        Switching devices closes the current session and clears every window
        before the new feed is requested. Passing None returns to IDLE.
        """
        if device_id is not None and device_id == self._device_id and self._status in _ACTIVE:
            if settings is not None:
                self.update_settings(settings)
            return

        await self._close(reason="device_switch")
        self._windows.reset()
        self._telemetry = Telemetry()
        self._device_id = device_id
        self._device_settings = settings or DEFAULT_SETTINGS

        if device_id is None:
            self._status = ConnectionStatus.IDLE
            self.logger.info("No active device")
            self._publish()
            return

        self.logger.info("Active device selected", device_id=device_id)
        await self.connect()

    def update_settings(self, settings: DeviceSettingsConfig) -> None:
        """Apply saved settings for the active device and republish."""
        self._device_settings = settings
        self._publish()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Open the feed for the active device and start a session.

        An already open or connecting session for this device is closed
        first, so there is never more than one open session per pair.

        Returns:
            True if the feed is open

        Raises:
            LifecycleError: If no device is active
        """
        if self._device_id is None:
            raise LifecycleError("Cannot connect without an active device")

        if self._status in _ACTIVE:
            await self._close(reason="reconnect")

        self._generation += 1
        generation = self._generation
        device_id = self._device_id
        context = {"user_id": self.user_id, "device_id": device_id}

        self._closed.clear()
        self._status = ConnectionStatus.CONNECTING
        self._publish()

        feed = self.feed_factory(device_id)
        self._feed = feed
        try:
            await feed.connect()
        except Exception as e:
            self._classifier.classify(e, context=context)
            if generation == self._generation:
                self._feed = None
                self._mark_closed()
                self._publish()
            return False

        if generation != self._generation:
            # Closed or superseded while the handshake was in flight
            await self._close_feed(feed, context)
            return False

        session_id: str | None = None
        try:
            session_id = await self.store.create_session(self.user_id, device_id)
        except Exception as e:
            # Live display keeps working; samples just are not persisted
            self._classifier.classify(e, context={**context, "operation": "create_session"})

        if generation != self._generation:
            if session_id is not None:
                await self._end_session(session_id, context)
            await self._close_feed(feed, context)
            return False

        self._session_id = session_id
        self._status = ConnectionStatus.OPEN
        self.stats.sessions_opened += 1
        self._pump_task = asyncio.create_task(self._pump(generation, feed))
        self.logger.info("Feed open", device_id=device_id, session_id=session_id)
        self._publish()
        return True

    async def disconnect(self) -> None:
        """Explicitly stop the feed and close the session."""
        await self._close(reason="disconnect")

    async def shutdown(self) -> None:
        """Close everything and wait for outstanding durable writes."""
        await self._close(reason="shutdown")
        self._listeners.clear()
        await self.drain_writes()

    async def drain_writes(self) -> None:
        """Wait for every scheduled durable write to finish."""
        while self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)

    async def wait_closed(self) -> None:
        """Wait until the current session has closed."""
        await self._closed.wait()

    def pause(self) -> None:
        """Drop incoming samples until resumed."""
        if self._is_playing:
            self._is_playing = False
            self.logger.info("Feed paused")
            self._publish()

    def resume(self) -> None:
        """Accept samples again. Samples dropped while paused are not replayed."""
        if not self._is_playing:
            self._is_playing = True
            self.logger.info("Feed resumed")
            self._publish()

    # ------------------------------------------------------------------
    # Frame handling
    # ------------------------------------------------------------------

    def handle_frame(self, raw: str | bytes) -> bool:
        """Process one inbound frame.

        Returns:
            True if the sample was accepted into the windows
        """
        if self._status != ConnectionStatus.OPEN:
            self.stats.discarded_closed += 1
            return False
        if not self._is_playing:
            self.stats.dropped_paused += 1
            return False

        try:
            sample = decode_sample(raw)
        except SampleDecodeError as e:
            self.stats.decode_errors += 1
            self._classifier.classify(
                e, context={"user_id": self.user_id, "device_id": self._device_id}
            )
            return False

        self._windows.ingest(sample)
        self._telemetry = Telemetry.from_sample(sample)
        self.stats.accepted += 1

        if self._session_id is not None:
            task = asyncio.create_task(self._persist(self._generation, self._session_id, sample))
            self._writes.add(task)
            task.add_done_callback(self._writes.discard)

        self._publish()
        return True

    async def _pump(self, generation: int, feed: Feed) -> None:
        context = {"user_id": self.user_id, "device_id": self._device_id}
        try:
            async for raw in feed.frames():
                if generation != self._generation:
                    return
                try:
                    self.handle_frame(raw)
                except Exception as e:
                    if not self._classifier.classify(e, context=context).closes_feed:
                        continue
                    if generation == self._generation:
                        await self._close(reason="frame_error")
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = self._classifier.classify(e, context=context)
            # A feed iterator that raised cannot be resumed
            if generation == self._generation:
                await self._close(reason=error.error_type.value)
            return

        if generation == self._generation:
            await self._close(reason="feed_ended")

    async def _persist(self, generation: int, session_id: str, sample: Sample) -> None:
        try:
            await self.store.insert_biosignal(session_id, self.user_id, sample)
        except Exception as e:
            self._classifier.classify(
                e,
                context={
                    "user_id": self.user_id,
                    "session_id": session_id,
                    "operation": "insert_biosignal",
                },
            )
            if generation == self._generation:
                self.stats.persist_failures += 1
            return
        if generation == self._generation:
            self.stats.persisted += 1

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _mark_closed(self) -> None:
        self._status = ConnectionStatus.CLOSED
        self._closed.set()

    async def _close(self, reason: str) -> None:
        """Move CONNECTING/OPEN to CLOSED: stop the feed, stamp the session, clear windows."""
        if self._status not in _ACTIVE:
            return

        self._generation += 1
        pump, self._pump_task = self._pump_task, None
        feed, self._feed = self._feed, None
        session_id, self._session_id = self._session_id, None
        context = {"user_id": self.user_id, "device_id": self._device_id, "reason": reason}

        self._mark_closed()
        self._windows.reset()
        self._telemetry = Telemetry()
        self.logger.info("Feed closed", session_id=session_id, reason=reason)

        if pump is not None and pump is not asyncio.current_task():
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump
        if feed is not None:
            await self._close_feed(feed, context)
        if session_id is not None:
            await self._end_session(session_id, context)

        self._publish()

    async def _close_feed(self, feed: Feed, context: dict[str, object]) -> None:
        try:
            await feed.close()
        except Exception as e:
            self._classifier.classify(e, context={**context, "operation": "close_feed"})

    async def _end_session(self, session_id: str, context: dict[str, object]) -> None:
        try:
            await self.store.end_session(session_id)
        except Exception as e:
            self._classifier.classify(
                e, context={**context, "session_id": session_id, "operation": "end_session"}
            )
