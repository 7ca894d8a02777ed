"""Synthetic NeuraBand feed for demos and local development.

Implements the same ``Feed`` protocol as the WebSocket transport, so the
lifecycle cannot tell the two apart. Each frame carries one new reading per
scalar, one new HRV point and a short chunk of ECG, PPG and IMU samples.
"""

from __future__ import annotations

import asyncio
import json
import math
import random
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

import structlog

from neuraband_server.services.feed import FeedConnectionError

logger = structlog.get_logger()


class MockFeed:
    """Frame generator with plausible physiology.

    Args:
        device_id: Device the frames are attributed to
        interval: Seconds between frames
        chunk_size: Waveform points per frame
        max_frames: Stop after this many frames (None = run until closed)
        seed: Seed for reproducible output
    """

    def __init__(
        self,
        device_id: str,
        interval: float = 1.0,
        chunk_size: int = 25,
        max_frames: int | None = None,
        seed: int | None = None,
    ) -> None:
        self.device_id = device_id
        self.interval = interval
        self.chunk_size = chunk_size
        self.max_frames = max_frames
        self._rng = random.Random(seed)
        self._connected = False
        self._closed = asyncio.Event()
        self._ecg_phase = 0.0
        self._ppg_phase = 0.0
        self._imu_clock = 0.0
        self._battery = 100.0
        self.logger = logger.bind(component="mock_feed", device_id=device_id)

    async def connect(self) -> None:
        if self._closed.is_set():
            raise FeedConnectionError("Mock feed was closed")
        self._connected = True
        self.logger.info("Mock feed connected", interval=self.interval)

    async def frames(self) -> AsyncIterator[str]:
        if not self._connected:
            raise FeedConnectionError("Mock feed is not connected")
        sent = 0
        while not self._closed.is_set():
            if self.max_frames is not None and sent >= self.max_frames:
                return
            yield json.dumps(self.generate_frame())
            sent += 1
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=self.interval)
            except TimeoutError:
                continue

    async def close(self) -> None:
        self._connected = False
        self._closed.set()

    # ------------------------------------------------------------------
    # Signal generators
    # ------------------------------------------------------------------

    def _ecg_point(self) -> float:
        noise = (self._rng.random() - 0.5) * 0.1
        peak = self._rng.random() * 2 + 1 if math.sin(self._ecg_phase * 25) > 0.95 else 0.0
        wave = math.sin(self._ecg_phase * 2) * 0.5 + math.sin(self._ecg_phase) * 0.2
        self._ecg_phase += 0.1
        return round(wave + peak + noise, 3)

    def _ppg_point(self) -> float:
        noise = (self._rng.random() - 0.5) * 0.05
        wave = math.sin(self._ppg_phase) * math.sin(self._ppg_phase / 20)
        self._ppg_phase += 0.1
        return round(wave + noise, 3)

    def _imu_point(self) -> tuple[float, float, float]:
        t = self._imu_clock
        self._imu_clock += 0.04
        return (
            round(math.sin(t) * 0.5 + (self._rng.random() - 0.5) * 0.2, 3),
            round(math.cos(t) * 0.5 + (self._rng.random() - 0.5) * 0.2, 3),
            round(math.sin(t / 1.5) * 0.3 + (self._rng.random() - 0.5) * 0.1, 3),
        )

    def generate_frame(self) -> dict[str, Any]:
        """Build one frame in the feed's JSON shape."""
        now = datetime.now(UTC)
        imu = [self._imu_point() for _ in range(self.chunk_size)]
        self._battery = max(0.0, self._battery - 0.01)
        return {
            "heartRate": self._rng.randint(65, 85),
            "spo2": self._rng.randint(96, 99),
            "temperature": round(self._rng.uniform(36.5, 37.2), 1),
            "stress": {"score": self._rng.randint(10, 90)},
            "motion": {"score": self._rng.randint(5, 95)},
            "hrv": {
                "values": [self._rng.randint(40, 70)],
                "timestamps": [now.strftime("%H:%M:%S")],
            },
            "ecg": [self._ecg_point() for _ in range(self.chunk_size)],
            "ppg": [self._ppg_point() for _ in range(self.chunk_size)],
            "imu": {
                "x": [point[0] for point in imu],
                "y": [point[1] for point in imu],
                "z": [point[2] for point in imu],
            },
            "battery": round(self._battery, 2),
            "sqi": {
                "ecg": self._rng.randint(85, 98),
                "ppg": self._rng.randint(80, 95),
                "imu": self._rng.randint(70, 90),
            },
            "leadOff": False,
        }
