"""Dashboard view projection.

Turns window contents, the latest device telemetry and static per-device
settings into an immutable ``DashboardSnapshot``. Projection never mutates
its inputs; recompute it whenever a sample is accepted or settings change.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType

from neuraband_server.schemas.dashboard import (
    ConnectionStatus,
    DashboardSnapshot,
    DataLogFile,
    DetailedStatus,
    DeviceStatus,
    HrvChart,
    ImuStream,
    Metric,
    ScoreCard,
    SignalStream,
)
from neuraband_server.schemas.sample import HrvSeries, Sample
from neuraband_server.schemas.settings import DEFAULT_SETTINGS, DeviceSettingsConfig
from neuraband_server.services.classification import (
    SensorStatus,
    battery_status,
    motion_level,
    sqi_status,
    status_severity,
    stress_level,
)
from neuraband_server.services.store import BiosignalRecord
from neuraband_server.services.windows import Channel, RollingWindowStore, WindowSnapshot


@dataclass(frozen=True)
class Telemetry:
    """Device health fields from the most recent sample."""

    battery: float | None = None
    sqi: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    lead_off: bool | None = None

    @classmethod
    def from_sample(cls, sample: Sample) -> Telemetry:
        return cls(
            battery=sample.battery,
            sqi=MappingProxyType(dict(sample.sqi)),
            lead_off=sample.lead_off,
        )


@dataclass(frozen=True)
class SensorInfo:
    """Static metadata for one sub-sensor."""

    id: str
    name: str
    channels: tuple[Channel, ...]
    ok_details: str
    calibration: str | None = None


SENSORS: tuple[SensorInfo, ...] = (
    SensorInfo(
        id="ecg",
        name="ECG Sensor (AD8232)",
        channels=(Channel.ECG,),
        ok_details="Signal quality is excellent. R-peaks are clearly distinguishable.",
    ),
    SensorInfo(
        id="ppg",
        name="PPG Sensor (MAX30102)",
        channels=(Channel.PPG,),
        ok_details="IR and RED channels are stable. SpO2 calculation is reliable.",
    ),
    SensorInfo(
        id="imu",
        name="IMU (MPU6050)",
        channels=(Channel.IMU_X, Channel.IMU_Y, Channel.IMU_Z),
        ok_details="Motion data is stable. Gyroscope drift within acceptable limits.",
    ),
    SensorInfo(
        id="gsr",
        name="GSR Sensor",
        channels=(),
        ok_details="Tonic and phasic responses are being measured correctly.",
    ),
    SensorInfo(
        id="temp",
        name="Temperature (LM35)",
        channels=(Channel.TEMPERATURE,),
        ok_details="Sensor is reporting stable body temperature.",
        calibration="Calibrated on 2025-07-20",
    ),
)

_DEGRADED_DETAILS = {
    SensorStatus.WARNING: "Signal quality is degraded. Check sensor contact and motion artifacts.",
    SensorStatus.ERROR: "Signal quality is too low for reliable readings.",
}

_DEVICE_STATUS_SENSORS = (("ECG", "ecg"), ("PPG", "ppg"), ("IMU", "imu"))


def _change(sparkline: Sequence[float]) -> tuple[str | None, str | None]:
    """Percent change between the last two points, as ("1.2%", "increase")."""
    if len(sparkline) < 2 or sparkline[-2] == 0:
        return None, None
    previous, latest = sparkline[-2], sparkline[-1]
    percent = (latest - previous) / abs(previous) * 100
    return f"{abs(percent):.1f}%", "increase" if percent >= 0 else "decrease"


def _metric(windows: WindowSnapshot, channel: Channel, unit: str, label: str) -> Metric:
    sparkline = windows.get(channel)
    change, change_type = _change(sparkline)
    return Metric(
        value=windows.latest(channel),
        unit=unit,
        label=label,
        change=change,
        change_type=change_type,
        sparkline=sparkline,
    )


def _detailed_status(
    sensor: SensorInfo, windows: WindowSnapshot, telemetry: Telemetry
) -> DetailedStatus:
    sqi = telemetry.sqi.get(sensor.id)
    lead_off = None
    if sensor.id == "ecg" and telemetry.lead_off is not None:
        lead_off = "Disconnected" if telemetry.lead_off else "Connected"

    if sensor.channels and not all(windows.has_data(channel) for channel in sensor.channels):
        status = SensorStatus.ERROR
        details = "No data received from this sensor."
    elif lead_off == "Disconnected":
        status = SensorStatus.ERROR
        details = "Electrodes are not in contact with the skin."
    elif sqi is not None:
        status = sqi_status(sqi)
        details = sensor.ok_details if status == SensorStatus.OK else _DEGRADED_DETAILS[status]
    else:
        status = SensorStatus.OK
        details = sensor.ok_details

    return DetailedStatus(
        id=sensor.id,  # type: ignore[arg-type]
        name=sensor.name,
        status=status,
        severity=status_severity(status),
        sqi=sqi,
        lead_off=lead_off,  # type: ignore[arg-type]
        calibration=sensor.calibration,
        details=details,
    )


def project_dashboard(
    windows: WindowSnapshot,
    *,
    settings: DeviceSettingsConfig = DEFAULT_SETTINGS,
    telemetry: Telemetry | None = None,
    device_id: str | None = None,
    connection_status: ConnectionStatus = ConnectionStatus.IDLE,
    is_playing: bool = True,
    logs: Iterable[DataLogFile] = (),
) -> DashboardSnapshot:
    """Build the dashboard snapshot.

    Args:
        windows: Read-only window contents
        settings: Active device settings
        telemetry: Battery, SQI and lead-off from the latest sample
        device_id: Active device
        connection_status: Current feed state
        is_playing: Whether live samples are being accepted
        logs: Data log listing

    Returns:
        Immutable snapshot matching the dashboard display contract
    """
    telemetry = telemetry or Telemetry()

    stress = windows.latest(Channel.STRESS)
    motion = windows.latest(Channel.MOTION)
    hrv_points = windows.get(Channel.HRV)

    detailed = tuple(_detailed_status(sensor, windows, telemetry) for sensor in SENSORS)
    by_id = {entry.id: entry for entry in detailed}

    battery = (
        battery_status(telemetry.battery) if telemetry.battery is not None else SensorStatus.OK
    )
    device_status = (
        DeviceStatus(name="Battery", status=battery, severity=status_severity(battery)),
        *(
            DeviceStatus(
                name=name,  # type: ignore[arg-type]
                status=by_id[sensor_id].status,
                severity=by_id[sensor_id].severity,
            )
            for name, sensor_id in _DEVICE_STATUS_SENSORS
        ),
    )

    return DashboardSnapshot(
        device_id=device_id,
        connection_status=connection_status,
        is_playing=is_playing,
        heart_rate=_metric(windows, Channel.HEART_RATE, "BPM", "Heart Rate"),
        spo2=_metric(windows, Channel.SPO2, "%", "SpO2"),
        temperature=_metric(windows, Channel.TEMPERATURE, "°C", "Body Temperature"),
        stress=ScoreCard(
            level=stress_level(stress) if stress is not None else None,
            score=stress,
            label="Stress Level",
        ),
        motion=ScoreCard(
            level=motion_level(motion) if motion is not None else None,
            score=motion,
            label="Motion Activity",
        ),
        hrv=HrvChart(
            timestamps=tuple(point.timestamp for point in hrv_points),
            values=tuple(point.value for point in hrv_points),
        ),
        signals=SignalStream(
            ecg=windows.get(Channel.ECG),
            ppg=windows.get(Channel.PPG),
            imu=ImuStream(
                x=windows.get(Channel.IMU_X),
                y=windows.get(Channel.IMU_Y),
                z=windows.get(Channel.IMU_Z),
            ),
        ),
        device_status=device_status,
        detailed_status=detailed,
        settings=settings,
        logs=tuple(logs),
    )


def record_to_sample(record: BiosignalRecord) -> Sample:
    """Rebuild the scalar part of a sample from a stored row."""
    hrv = None
    if record.hrv is not None:
        hrv = HrvSeries(values=(record.hrv,), timestamps=(record.timestamp.strftime("%H:%M:%S"),))
    return Sample(
        heart_rate=record.heart_rate,
        spo2=record.spo2,
        temperature=record.temperature,
        stress_score=record.stress_score,
        motion_score=record.motion_score,
        hrv=hrv,
        received_at=record.timestamp,
    )


def replay_history(
    records: Iterable[BiosignalRecord],
    capacities: Mapping[Channel, int] | None = None,
) -> RollingWindowStore:
    """Load stored rows (oldest first) into a fresh window store.

    Uses the same append path as live samples, so history and live views
    window identically.
    """
    store = RollingWindowStore(capacities)
    for record in records:
        store.ingest(record_to_sample(record))
    return store


def _row_key(record: BiosignalRecord) -> tuple[str, datetime]:
    # Some drivers hand back naive UTC timestamps
    timestamp = record.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return record.session_id, timestamp.astimezone(UTC)


class LiveHistory:
    """Stored history kept current with rows inserted after the initial load.

    The initial rows are replayed through a fresh window store; later rows go
    through the same ingest path, so the view always matches a replay of
    everything it has seen. Rows that were already part of the initial load
    are skipped when they arrive again through the change feed.

    Args:
        records: Stored rows, oldest first
        capacities: Window capacities (the live view's)
        settings: Settings shown alongside the history
        device_id: Device shown alongside the history
        logs: Data log listing
    """

    def __init__(
        self,
        records: Sequence[BiosignalRecord],
        *,
        capacities: Mapping[Channel, int] | None = None,
        settings: DeviceSettingsConfig = DEFAULT_SETTINGS,
        device_id: str | None = None,
        logs: Iterable[DataLogFile] = (),
    ) -> None:
        self.settings = settings
        self.device_id = device_id
        self.logs = tuple(logs)
        self._windows = replay_history(records, capacities)
        self._replayed = {_row_key(record) for record in records}
        self.count = len(records)

    def add(self, record: BiosignalRecord) -> bool:
        """Append a newly stored row.

        Returns:
            False if the row was already part of the initial load
        """
        if _row_key(record) in self._replayed:
            return False
        self._windows.ingest(record_to_sample(record))
        self.count += 1
        return True

    def snapshot(self) -> DashboardSnapshot | None:
        """Project the rows seen so far, or None when there are none."""
        if not self.count:
            return None
        return project_dashboard(
            self._windows.snapshot(),
            settings=self.settings,
            device_id=self.device_id,
            connection_status=ConnectionStatus.CLOSED,
            is_playing=False,
            logs=self.logs,
        )


def project_history(
    records: Sequence[BiosignalRecord],
    *,
    capacities: Mapping[Channel, int] | None = None,
    settings: DeviceSettingsConfig = DEFAULT_SETTINGS,
    device_id: str | None = None,
    logs: Iterable[DataLogFile] = (),
) -> DashboardSnapshot | None:
    """Project stored rows into a dashboard snapshot.

    Returns:
        Snapshot, or None when there is no history yet
    """
    history = LiveHistory(
        records, capacities=capacities, settings=settings, device_id=device_id, logs=logs
    )
    return history.snapshot()
