"""Pydantic schemas for the dashboard display contract."""

from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from neuraband_server.schemas.settings import DeviceSettingsConfig
from neuraband_server.services.classification import Level, SensorStatus, Severity


class ConnectionStatus(str, Enum):
    """State of the inbound feed for the active device."""

    IDLE = "idle"  # No active device
    CONNECTING = "connecting"  # Feed requested, no session yet
    OPEN = "open"  # Feed established, session recording
    CLOSED = "closed"  # Feed ended, session stamped


class DisplayModel(BaseModel):
    """Immutable model serialized with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Metric(DisplayModel):
    """Scalar reading with trailing sparkline."""

    value: float | None = Field(description="Latest reading (None before the first sample)")
    unit: str
    label: str
    change: str | None = Field(default=None, description="Percent change vs previous point")
    change_type: Literal["increase", "decrease"] | None = None
    sparkline: tuple[float, ...] = ()


class ScoreCard(DisplayModel):
    """0-100 score with its classified level."""

    level: Level | None
    score: float | None
    label: str


class HrvChart(DisplayModel):
    """HRV series for the trend chart."""

    timestamps: tuple[str, ...] = ()
    values: tuple[float, ...] = ()


class ImuStream(DisplayModel):
    x: tuple[float, ...] = ()
    y: tuple[float, ...] = ()
    z: tuple[float, ...] = ()


class SignalStream(DisplayModel):
    """Raw waveforms for the real-time charts."""

    ecg: tuple[float, ...] = ()
    ppg: tuple[float, ...] = ()
    imu: ImuStream = Field(default_factory=ImuStream)


class DeviceStatus(DisplayModel):
    """Compact status entry for the dashboard card."""

    name: Literal["Battery", "ECG", "PPG", "IMU"]
    status: SensorStatus
    severity: Severity


class DetailedStatus(DisplayModel):
    """Diagnostic entry for one sub-sensor."""

    id: Literal["ecg", "ppg", "imu", "gsr", "temp"]
    name: str
    status: SensorStatus
    severity: Severity
    sqi: float | None = None
    lead_off: Literal["Connected", "Disconnected"] | None = None
    calibration: str | None = None
    details: str


class DataLogFile(DisplayModel):
    """Entry in the on-device data log listing."""

    id: str
    name: str
    type: Literal["file", "folder"]
    size: str
    modified: str
    path: str


class DashboardSnapshot(DisplayModel):
    """Everything the dashboard renders, recomputed per accepted sample."""

    device_id: str | None
    connection_status: ConnectionStatus
    is_playing: bool
    heart_rate: Metric
    spo2: Metric
    temperature: Metric
    stress: ScoreCard
    motion: ScoreCard
    hrv: HrvChart
    signals: SignalStream
    device_status: tuple[DeviceStatus, ...]
    detailed_status: tuple[DetailedStatus, ...]
    settings: DeviceSettingsConfig
    logs: tuple[DataLogFile, ...] = ()
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
