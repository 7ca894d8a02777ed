"""Pydantic schemas for inbound frames, device settings and dashboard snapshots."""

from neuraband_server.schemas.dashboard import (
    ConnectionStatus,
    DashboardSnapshot,
    DataLogFile,
    DetailedStatus,
    DeviceStatus,
    Metric,
    ScoreCard,
)
from neuraband_server.schemas.sample import Sample, SampleDecodeError, decode_sample
from neuraband_server.schemas.settings import (
    DeviceSettingsConfig,
    SettingsValidationError,
    validate_settings,
)

__all__ = [
    "ConnectionStatus",
    "DashboardSnapshot",
    "DataLogFile",
    "DetailedStatus",
    "DeviceSettingsConfig",
    "DeviceStatus",
    "Metric",
    "Sample",
    "SampleDecodeError",
    "ScoreCard",
    "SettingsValidationError",
    "decode_sample",
    "validate_settings",
]
