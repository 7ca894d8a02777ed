"""Tests for the dashboard view projection."""

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from types import MappingProxyType

from neuraband_server.schemas.dashboard import ConnectionStatus
from neuraband_server.schemas.sample import ImuSeries, Sample
from neuraband_server.schemas.settings import DeviceSettingsConfig
from neuraband_server.services.classification import Level, SensorStatus, Severity
from neuraband_server.services.projection import (
    LiveHistory,
    Telemetry,
    project_dashboard,
    project_history,
    replay_history,
)
from neuraband_server.services.store import BiosignalRecord
from neuraband_server.services.windows import Channel, RollingWindowStore


def live_windows() -> RollingWindowStore:
    store = RollingWindowStore()
    store.ingest(
        Sample(
            heart_rate=70.0,
            spo2=98.0,
            temperature=36.5,
            stress_score=35.0,
            motion_score=80.0,
            ecg=(0.1, 0.2),
            ppg=(0.5,),
            imu=ImuSeries(x=(0.0,), y=(0.0,), z=(9.8,)),
        )
    )
    store.ingest(Sample(heart_rate=77.0, stress_score=72.0))
    return store


def records(count: int, start: datetime | None = None) -> list[BiosignalRecord]:
    start = start or datetime(2026, 5, 1, 8, 0, tzinfo=UTC)
    return [
        BiosignalRecord(
            session_id="s-1",
            user_id="u-1",
            timestamp=start + timedelta(seconds=i),
            heart_rate=60.0 + i,
            spo2=97.0,
            temperature=36.6,
            stress_score=float(i),
            motion_score=None,
            hrv=40.0 + i,
        )
        for i in range(count)
    ]


class TestProjectDashboard:
    """Live snapshot projection."""

    def test_empty_windows_project_placeholders(self):
        """Test that empty windows give placeholder metrics and error sensors."""
        snapshot = project_dashboard(RollingWindowStore().snapshot())

        assert snapshot.connection_status == ConnectionStatus.IDLE
        assert snapshot.heart_rate.value is None
        assert snapshot.heart_rate.sparkline == ()
        assert snapshot.stress.level is None
        assert snapshot.hrv.values == ()
        # GSR has no data channel
        statuses = {entry.id: entry.status for entry in snapshot.detailed_status}
        assert statuses == {
            "ecg": SensorStatus.ERROR,
            "ppg": SensorStatus.ERROR,
            "imu": SensorStatus.ERROR,
            "gsr": SensorStatus.OK,
            "temp": SensorStatus.ERROR,
        }

    def test_metrics_scores_and_change(self):
        """Test metric values, percent change and score levels."""
        snapshot = project_dashboard(
            live_windows().snapshot(), connection_status=ConnectionStatus.OPEN
        )

        assert snapshot.heart_rate.value == 77.0
        assert snapshot.heart_rate.sparkline == (70.0, 77.0)
        assert snapshot.heart_rate.change == "10.0%"
        assert snapshot.heart_rate.change_type == "increase"
        assert snapshot.spo2.change is None
        assert snapshot.stress.level == Level.HIGH
        assert snapshot.stress.score == 72.0
        assert snapshot.motion.level == Level.HIGH
        assert snapshot.signals.ecg == (0.1, 0.2)
        assert snapshot.signals.imu.z == (9.8,)

    def test_projection_does_not_mutate_windows(self):
        """Test that projecting leaves the window store unchanged."""
        store = live_windows()
        before = store.snapshot()

        project_dashboard(store.snapshot())

        assert store.snapshot() == before

    def test_snapshot_serializes_with_camel_case(self):
        """Test the JSON shape sent to clients."""
        settings = DeviceSettingsConfig(model="neuraband_B_int8.tflite")
        snapshot = project_dashboard(live_windows().snapshot(), settings=settings, device_id="d-1")

        data = snapshot.model_dump(mode="json", by_alias=True)

        assert data["deviceId"] == "d-1"
        assert data["heartRate"]["changeType"] == "increase"
        assert data["connectionStatus"] == "idle"
        assert data["settings"]["samplingRates"]["ecg"] == 250
        assert data["settings"]["model"] == "neuraband_B_int8.tflite"
        assert data["detailedStatus"][0]["severity"] in {"positive", "caution", "critical"}


class TestDeviceStatus:
    """Sensor status derived from telemetry."""

    def test_device_status_from_telemetry(self):
        """Test battery and SQI thresholds feeding device and detailed status."""
        telemetry = Telemetry(
            battery=15.0,
            sqi=MappingProxyType({"ecg": 65.0, "ppg": 95.0}),
            lead_off=False,
        )

        snapshot = project_dashboard(live_windows().snapshot(), telemetry=telemetry)

        device = {entry.name: (entry.status, entry.severity) for entry in snapshot.device_status}
        assert device["Battery"] == (SensorStatus.WARNING, Severity.CAUTION)
        assert device["ECG"] == (SensorStatus.WARNING, Severity.CAUTION)
        assert device["PPG"] == (SensorStatus.OK, Severity.POSITIVE)
        detailed = {entry.id: entry for entry in snapshot.detailed_status}
        assert detailed["ecg"].lead_off == "Connected"
        assert detailed["ecg"].sqi == 65.0
        assert detailed["temp"].calibration == "Calibrated on 2025-07-20"

    def test_lead_off_marks_ecg_as_error(self):
        """Test that a lead-off ECG is critical."""
        snapshot = project_dashboard(live_windows().snapshot(), telemetry=Telemetry(lead_off=True))

        ecg = next(entry for entry in snapshot.detailed_status if entry.id == "ecg")
        assert ecg.status == SensorStatus.ERROR
        assert ecg.severity == Severity.CRITICAL
        assert ecg.lead_off == "Disconnected"

    def test_missing_battery_reads_ok(self):
        """Test that no battery reading is shown as ok."""
        snapshot = project_dashboard(live_windows().snapshot())

        assert snapshot.device_status[0].name == "Battery"
        assert snapshot.device_status[0].status == SensorStatus.OK


class TestHistoryProjection:
    """Snapshots rebuilt from stored rows."""

    def test_history_replay_uses_live_windowing(self):
        """Test that replayed rows window exactly like live appends."""
        rows = records(25)

        replayed = replay_history(rows)
        live = RollingWindowStore()
        for row in rows:
            live.append(Channel.HEART_RATE, row.heart_rate)

        assert replayed.snapshot().get(Channel.HEART_RATE) == live.snapshot().get(
            Channel.HEART_RATE
        )
        assert replayed.len_of(Channel.HEART_RATE) == 20
        assert replayed.len_of(Channel.HRV) == 12

    def test_project_history(self):
        """Test a closed, paused snapshot built from three rows."""
        snapshot = project_history(records(3), device_id="d-1")

        assert snapshot is not None
        assert snapshot.connection_status == ConnectionStatus.CLOSED
        assert snapshot.is_playing is False
        assert snapshot.heart_rate.sparkline == (60.0, 61.0, 62.0)
        assert snapshot.hrv.values == (40.0, 41.0, 42.0)
        assert snapshot.hrv.timestamps == ("08:00:00", "08:00:01", "08:00:02")
        assert snapshot.motion.score is None

    def test_project_history_without_rows(self):
        """Test that no rows means no snapshot."""
        assert project_history([]) is None


class TestLiveHistory:
    """History kept current with newly stored rows."""

    def test_new_rows_extend_the_replay(self):
        """Test that added rows match a replay of every row seen."""
        rows = records(5)
        history = LiveHistory(rows[:3])

        for row in rows[3:]:
            assert history.add(row)

        assert history.count == 5
        assert history.snapshot() == project_history(rows)

    def test_rows_from_the_initial_load_are_skipped(self):
        """Test that a row already replayed is not appended twice."""
        rows = records(3)
        history = LiveHistory(rows)

        assert not history.add(rows[-1])
        assert history.count == 3
        assert history.snapshot().heart_rate.sparkline == (60.0, 61.0, 62.0)

    def test_naive_stored_timestamps_match_aware_rows(self):
        """Test that a naive UTC row from the database matches its aware twin."""
        aware = records(1)[0]
        naive = replace(aware, timestamp=aware.timestamp.replace(tzinfo=None))
        history = LiveHistory([naive])

        assert not history.add(aware)

    def test_empty_history_fills_from_new_rows(self):
        """Test that a history with no rows starts producing snapshots once rows arrive."""
        history = LiveHistory([], device_id="d-1")
        assert history.snapshot() is None

        history.add(records(1)[0])

        snapshot = history.snapshot()
        assert snapshot is not None
        assert snapshot.device_id == "d-1"
        assert snapshot.heart_rate.value == 60.0
