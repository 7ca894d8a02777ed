"""Inbound biosignal sample schema and frame decoding.

A frame is one self-describing JSON snapshot from the feed. Decoding is
lenient per field: anything missing or of the wrong type becomes ``None`` so
that one bad field never discards the rest of the sample. Only a frame that
cannot be parsed at all (invalid JSON, or not a JSON object) is rejected.

Accepted keys:
    heartRate, spo2, temperature    number, or {"value": number}
    stress, motion                  {"score": number} or number, in [0, 100]
    hrv                             {"values": [...], "timestamps": [...]}
    ecg, ppg                        [number, ...]
    imu                             {"x": [...], "y": [...], "z": [...]}
    battery                         number (percent)
    sqi                             {"ecg": number, "ppg": number, ...}
    leadOff                         bool
Waveforms may also be nested under ``signals`` as the dashboard sends them.
"""

from __future__ import annotations

import json
import math
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger()

SCORE_MIN = 0.0
SCORE_MAX = 100.0


class SampleDecodeError(ValueError):
    """Raised when a frame cannot be parsed into a sample at all."""


class HrvSeries(BaseModel):
    """Recent HRV values with parallel timestamp labels."""

    model_config = ConfigDict(frozen=True)

    values: tuple[float, ...]
    timestamps: tuple[str, ...]


class ImuSeries(BaseModel):
    """Three parallel accelerometer axes."""

    model_config = ConfigDict(frozen=True)

    x: tuple[float, ...]
    y: tuple[float, ...]
    z: tuple[float, ...]


class Sample(BaseModel):
    """One decoded biosignal snapshot.

    Scalar fields are ``None`` when missing; sequence fields are ``None`` or
    non-empty.
    """

    model_config = ConfigDict(frozen=True)

    heart_rate: float | None = None
    spo2: float | None = None
    temperature: float | None = None
    stress_score: float | None = None
    motion_score: float | None = None
    hrv: HrvSeries | None = None
    ecg: tuple[float, ...] | None = None
    ppg: tuple[float, ...] | None = None
    imu: ImuSeries | None = None
    battery: float | None = None
    sqi: dict[str, float] = Field(default_factory=dict)
    lead_off: bool | None = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def latest_hrv(self) -> float | None:
        """Newest HRV value in the sample, if any."""
        if self.hrv is None:
            return None
        return self.hrv.values[-1]

    def is_empty(self) -> bool:
        """Check if no biosignal field survived decoding."""
        return all(
            value is None
            for value in (
                self.heart_rate,
                self.spo2,
                self.temperature,
                self.stress_score,
                self.motion_score,
                self.hrv,
                self.ecg,
                self.ppg,
                self.imu,
            )
        )


def _number(value: Any) -> float | None:
    """Coerce a JSON value to float, or None if it is not a finite number."""
    if isinstance(value, dict):
        value = value.get("value")
    # bool is an int subclass; a flag is never a reading
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if not math.isfinite(number):
        return None
    return number


def _score(payload: dict[str, Any], key: str) -> float | None:
    raw = payload.get(key)
    if isinstance(raw, dict):
        raw = raw.get("score")
    score = _number(raw)
    if score is None:
        return None
    if not SCORE_MIN <= score <= SCORE_MAX:
        logger.warning("Out-of-range score rejected", field=key, score=score)
        return None
    return score


def _sequence(value: Any) -> tuple[float, ...] | None:
    """Coerce a JSON array to a tuple of floats; empty or mixed arrays are missing."""
    if not isinstance(value, list) or not value:
        return None
    numbers = tuple(_number(item) for item in value)
    if any(number is None for number in numbers):
        return None
    return numbers  # type: ignore[return-value]


def _hrv(value: Any, received_at: datetime) -> HrvSeries | None:
    if not isinstance(value, dict):
        return None
    values = _sequence(value.get("values"))
    if values is None:
        return None
    timestamps = value.get("timestamps")
    if (
        isinstance(timestamps, list)
        and len(timestamps) == len(values)
        and all(isinstance(label, str) for label in timestamps)
    ):
        labels = tuple(timestamps)
    else:
        labels = (received_at.strftime("%H:%M:%S"),) * len(values)
    return HrvSeries(values=values, timestamps=labels)


def _imu(value: Any) -> ImuSeries | None:
    if not isinstance(value, dict):
        return None
    axes = [_sequence(value.get(axis)) for axis in ("x", "y", "z")]
    if any(axis is None for axis in axes):
        return None
    x, y, z = axes
    return ImuSeries(x=x, y=y, z=z)  # type: ignore[arg-type]


def _sqi(value: Any) -> dict[str, float]:
    if not isinstance(value, dict):
        return {}
    result = {}
    for sensor, raw in value.items():
        number = _number(raw)
        if number is not None:
            result[str(sensor)] = number
    return result


def decode_sample(raw: str | bytes, received_at: datetime | None = None) -> Sample:
    """Decode one feed frame into a Sample.

    Args:
        raw: JSON text of the frame
        received_at: Receipt time (defaults to now, UTC)

    Returns:
        Sample with every well-typed field populated

    Raises:
        SampleDecodeError: If the frame is not a JSON object
    """
    # Oversized integers raise ValueError and deep nesting RecursionError, not JSONDecodeError
    try:
        payload = json.loads(raw)
    except (ValueError, RecursionError, TypeError) as e:
        raise SampleDecodeError(f"Malformed frame: {e}") from e

    if not isinstance(payload, dict):
        raise SampleDecodeError(f"Frame must be a JSON object, got {type(payload).__name__}")

    received_at = received_at or datetime.now(UTC)
    signals = payload.get("signals")
    if not isinstance(signals, dict):
        signals = payload

    return Sample(
        heart_rate=_number(payload.get("heartRate")),
        spo2=_number(payload.get("spo2")),
        temperature=_number(payload.get("temperature")),
        stress_score=_score(payload, "stress"),
        motion_score=_score(payload, "motion"),
        hrv=_hrv(payload.get("hrv"), received_at),
        ecg=_sequence(signals.get("ecg")),
        ppg=_sequence(signals.get("ppg")),
        imu=_imu(signals.get("imu")),
        battery=_number(payload.get("battery")),
        sqi=_sqi(payload.get("sqi")),
        lead_off=payload.get("leadOff") if isinstance(payload.get("leadOff"), bool) else None,
        received_at=received_at,
    )
