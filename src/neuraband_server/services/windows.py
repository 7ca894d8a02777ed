"""Rolling window store for live biosignal channels.

Every channel keeps a fixed-capacity trailing buffer. Appends go to the
newest end and evict the oldest entry once the buffer is full, so a buffer
always holds the last ``capacity`` values in arrival order. The same
algorithm serves scalar sparklines, HRV points and raw waveforms, and both
the history replay and the live update paths.

The store is mutated only by its owner (the session lifecycle). Everyone
else reads immutable ``WindowSnapshot`` copies.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from neuraband_server.schemas.sample import Sample


class Channel(str, Enum):
    """Independently tracked signal streams."""

    HEART_RATE = "heart_rate"
    SPO2 = "spo2"
    TEMPERATURE = "temperature"
    STRESS = "stress"
    MOTION = "motion"
    HRV = "hrv"
    ECG = "ecg"
    PPG = "ppg"
    IMU_X = "imu_x"
    IMU_Y = "imu_y"
    IMU_Z = "imu_z"


SCALAR_CHANNELS = (
    Channel.HEART_RATE,
    Channel.SPO2,
    Channel.TEMPERATURE,
    Channel.STRESS,
    Channel.MOTION,
)
WAVEFORM_CHANNELS = (
    Channel.ECG,
    Channel.PPG,
    Channel.IMU_X,
    Channel.IMU_Y,
    Channel.IMU_Z,
)


def default_capacities(
    scalar: int = 20,
    hrv: int = 12,
    waveform: int = 200,
) -> dict[Channel, int]:
    """Build a capacity map: sparklines, HRV points, raw waveform points."""
    capacities = {channel: scalar for channel in SCALAR_CHANNELS}
    capacities[Channel.HRV] = hrv
    capacities.update({channel: waveform for channel in WAVEFORM_CHANNELS})
    return capacities


@dataclass(frozen=True)
class HrvPoint:
    """One HRV value with its display label."""

    timestamp: str
    value: float


@dataclass(frozen=True)
class WindowSnapshot:
    """Read-only copy of every channel buffer at one point in time."""

    buffers: Mapping[Channel, tuple[Any, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def get(self, channel: Channel) -> tuple[Any, ...]:
        """Buffer contents for a channel, oldest first."""
        return self.buffers.get(channel, ())

    def latest(self, channel: Channel) -> Any | None:
        """Newest value of a channel, or None if it is empty."""
        values = self.get(channel)
        return values[-1] if values else None

    def has_data(self, channel: Channel) -> bool:
        """Check if a channel holds at least one value."""
        return bool(self.get(channel))

    def is_empty(self) -> bool:
        """Check if every channel is empty."""
        return not any(self.buffers.values())


class Window:
    """Fixed-capacity trailing buffer for one channel."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"Window capacity must be positive, got {capacity}")
        self._buffer: deque[Any] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._buffer.maxlen or 0

    def append(self, value: Any) -> None:
        self._buffer.append(value)

    def extend(self, values: Iterable[Any]) -> None:
        self._buffer.extend(values)

    def clear(self) -> None:
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)

    def values(self) -> tuple[Any, ...]:
        return tuple(self._buffer)


class RollingWindowStore:
    """Per-channel trailing buffers with fixed capacities.

    Capacities are set at construction and never change. Channels missing
    from ``capacities`` fall back to the defaults.

    Args:
        capacities: Capacity override per channel
    """

    def __init__(self, capacities: Mapping[Channel, int] | None = None) -> None:
        resolved = default_capacities()
        if capacities:
            resolved.update({Channel(channel): size for channel, size in capacities.items()})
        self._windows = {channel: Window(size) for channel, size in resolved.items()}

    def capacity(self, channel: Channel) -> int:
        """Configured capacity of a channel."""
        return self._windows[channel].capacity

    def len_of(self, channel: Channel) -> int:
        """Current number of values in a channel."""
        return len(self._windows[channel])

    def append(self, channel: Channel, value: Any) -> None:
        """Push one value, evicting the oldest once the channel is full."""
        self._windows[channel].append(value)

    def extend(self, channel: Channel, values: Iterable[Any]) -> None:
        """Push a chunk of values in order; same result as appending each."""
        self._windows[channel].extend(values)

    def ingest(self, sample: Sample) -> list[Channel]:
        """Append every field present in a sample to its channel.

        Sequence fields are treated as chunks of new points.

        Returns:
            Channels that were updated
        """
        updated: list[Channel] = []

        scalars = (
            (Channel.HEART_RATE, sample.heart_rate),
            (Channel.SPO2, sample.spo2),
            (Channel.TEMPERATURE, sample.temperature),
            (Channel.STRESS, sample.stress_score),
            (Channel.MOTION, sample.motion_score),
        )
        for channel, scalar in scalars:
            if scalar is not None:
                self.append(channel, scalar)
                updated.append(channel)

        if sample.hrv is not None:
            self.extend(
                Channel.HRV,
                (
                    HrvPoint(timestamp=label, value=value)
                    for label, value in zip(
                        sample.hrv.timestamps, sample.hrv.values, strict=True
                    )
                ),
            )
            updated.append(Channel.HRV)

        waveforms: list[tuple[Channel, tuple[float, ...] | None]] = [
            (Channel.ECG, sample.ecg),
            (Channel.PPG, sample.ppg),
        ]
        if sample.imu is not None:
            waveforms += [
                (Channel.IMU_X, sample.imu.x),
                (Channel.IMU_Y, sample.imu.y),
                (Channel.IMU_Z, sample.imu.z),
            ]
        for channel, points in waveforms:
            if points is not None:
                self.extend(channel, points)
                updated.append(channel)

        return updated

    def reset(self, channel: Channel | None = None) -> None:
        """Clear one channel, or every channel when none is given."""
        if channel is not None:
            self._windows[channel].clear()
            return
        for window in self._windows.values():
            window.clear()

    def is_empty(self) -> bool:
        """Check if every channel is empty."""
        return all(len(window) == 0 for window in self._windows.values())

    def snapshot(self) -> WindowSnapshot:
        """Immutable copy of all buffers."""
        return WindowSnapshot(
            buffers=MappingProxyType(
                {channel: window.values() for channel, window in self._windows.items()}
            )
        )
