"""Feed doubles and helpers shared by the tests."""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

from neuraband_server.services.feed import FeedConnectionError


def frame(**fields: Any) -> str:
    """Encode a feed frame."""
    return json.dumps(fields)


class ScriptedFeed:
    """Feed that plays queued frames and stays open until closed.

    Tests push frames with ``push`` and end the stream with ``finish``.
    """

    def __init__(self, device_id: str, fail_connect: bool = False) -> None:
        self.device_id = device_id
        self.fail_connect = fail_connect
        self.connected = False
        self.closed = False
        self.connect_gate: asyncio.Event | None = None
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()

    async def connect(self) -> None:
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.fail_connect:
            raise FeedConnectionError(f"Handshake refused for {self.device_id}")
        self.connected = True

    async def frames(self) -> AsyncIterator[str]:
        while True:
            raw = await self._queue.get()
            if raw is None:
                return
            yield raw

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(None)

    def push(self, raw: str) -> None:
        self._queue.put_nowait(raw)

    def finish(self) -> None:
        self._queue.put_nowait(None)


class FeedRecorder:
    """Feed factory that remembers every feed it built."""

    def __init__(self, fail_connect: bool = False) -> None:
        self.fail_connect = fail_connect
        self.feeds: list[ScriptedFeed] = []

    def __call__(self, device_id: str) -> ScriptedFeed:
        feed = ScriptedFeed(device_id, fail_connect=self.fail_connect)
        self.feeds.append(feed)
        return feed

    @property
    def last(self) -> ScriptedFeed:
        return self.feeds[-1]


async def settle() -> None:
    """Let pending tasks (pump, durable writes) run."""
    for _ in range(5):
        await asyncio.sleep(0)
