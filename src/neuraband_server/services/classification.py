"""Classification rules for scores and sensor health.

Pure functions with no side effects. Score inputs are assumed to be in
[0, 100]; range checking happens when frames are decoded.
"""

from enum import Enum


class Level(str, Enum):
    """Discrete level for a 0-100 score."""

    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"


class SensorStatus(str, Enum):
    """Health of a device sub-sensor."""

    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


class Severity(str, Enum):
    """Display severity for a sensor status."""

    POSITIVE = "positive"
    CAUTION = "caution"
    CRITICAL = "critical"


# (moderate_from, high_from); each boundary belongs to the higher bucket
STRESS_THRESHOLDS = (40.0, 70.0)
MOTION_THRESHOLDS = (30.0, 75.0)

SQI_OK_FROM = 80.0
SQI_WARNING_FROM = 60.0

BATTERY_OK_ABOVE = 20.0
BATTERY_WARNING_ABOVE = 10.0

_SEVERITY = {
    SensorStatus.OK: Severity.POSITIVE,
    SensorStatus.WARNING: Severity.CAUTION,
    SensorStatus.ERROR: Severity.CRITICAL,
}


def _level(score: float, thresholds: tuple[float, float]) -> Level:
    moderate_from, high_from = thresholds
    if score < moderate_from:
        return Level.LOW
    if score < high_from:
        return Level.MODERATE
    return Level.HIGH


def stress_level(score: float) -> Level:
    """Classify a stress score: <40 Low, <70 Moderate, else High."""
    return _level(score, STRESS_THRESHOLDS)


def motion_level(score: float) -> Level:
    """Classify a motion score: <30 Low, <75 Moderate, else High."""
    return _level(score, MOTION_THRESHOLDS)


def status_severity(status: SensorStatus | str) -> Severity:
    """Map a sensor status to its display severity.

    Raises:
        ValueError: If status is not ok, warning or error
    """
    return _SEVERITY[SensorStatus(status)]


def sqi_status(sqi: float) -> SensorStatus:
    """Classify a signal quality index (0-100)."""
    if sqi >= SQI_OK_FROM:
        return SensorStatus.OK
    if sqi >= SQI_WARNING_FROM:
        return SensorStatus.WARNING
    return SensorStatus.ERROR


def battery_status(percent: float) -> SensorStatus:
    """Classify remaining battery charge."""
    if percent > BATTERY_OK_ABOVE:
        return SensorStatus.OK
    if percent > BATTERY_WARNING_ABOVE:
        return SensorStatus.WARNING
    return SensorStatus.ERROR
