"""Inbound feed abstraction.

A feed delivers raw JSON frames for one device. The lifecycle only sees the
``Feed`` protocol; whether frames come from a device gateway over WebSocket
or from the synthetic generator is decided once, when the feed factory is
built from settings.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Protocol

import structlog
import websockets
from websockets.exceptions import ConnectionClosedError, InvalidHandshake, InvalidURI

from neuraband_server.core.config import Settings

logger = structlog.get_logger()


class FeedConnectionError(ConnectionError):
    """Raised when a feed handshake or keep-alive fails."""


class Feed(Protocol):
    """Source of raw frames for one device."""

    async def connect(self) -> None:
        """Complete the handshake. Raises FeedConnectionError on failure."""
        ...

    def frames(self) -> AsyncIterator[str | bytes]:
        """Yield frames in arrival order until the feed ends."""
        ...

    async def close(self) -> None:
        """Close the feed. Safe to call more than once."""
        ...


FeedFactory = Callable[[str], Feed]
"""Builds a feed for a device id."""


class WebSocketFeed:
    """Feed backed by a WebSocket connection to the device gateway.

    Args:
        url: Gateway URL (``ws://`` or ``wss://``)
        device_id: Device whose frames are requested
        open_timeout: Seconds allowed for the handshake
    """

    def __init__(self, url: str, device_id: str, open_timeout: float = 10.0) -> None:
        self.url = url
        self.device_id = device_id
        self.open_timeout = open_timeout
        self._connection: websockets.ClientConnection | None = None
        self.logger = logger.bind(component="websocket_feed", device_id=device_id)

    async def connect(self) -> None:
        try:
            self._connection = await websockets.connect(
                self.url,
                open_timeout=self.open_timeout,
                additional_headers={"X-Device-Id": self.device_id},
            )
        except (OSError, TimeoutError, InvalidHandshake, InvalidURI) as e:
            raise FeedConnectionError(f"Feed handshake failed for {self.url}: {e}") from e
        self.logger.info("Feed connected", url=self.url)

    async def frames(self) -> AsyncIterator[str | bytes]:
        if self._connection is None:
            raise FeedConnectionError("Feed is not connected")
        try:
            async for message in self._connection:
                yield message
        except ConnectionClosedError as e:
            raise FeedConnectionError(f"Feed connection lost: {e}") from e

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self.logger.info("Feed closed")


def build_feed_factory(config: Settings) -> FeedFactory:
    """Pick the feed implementation for the configured mode."""
    if config.is_mock_feed():
        from neuraband_server.services.mock_feed import MockFeed

        def mock_factory(device_id: str) -> Feed:
            return MockFeed(device_id=device_id, interval=config.mock_interval_seconds)

        return mock_factory

    def websocket_factory(device_id: str) -> Feed:
        return WebSocketFeed(config.feed_url, device_id=device_id)

    return websocket_factory
