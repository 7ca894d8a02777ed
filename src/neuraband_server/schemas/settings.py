"""Device settings payload schema."""

from enum import Enum
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = structlog.get_logger()

SUPPORTED_RATES_HZ: tuple[int, ...] = (25, 50, 100, 250, 500)


class ModelVariant(str, Enum):
    """On-device TinyML model variants."""

    FLOAT16 = "neuraband_B_float16.tflite"  # Balanced
    INT8 = "neuraband_B_int8.tflite"  # High performance


class SettingsValidationError(ValueError):
    """Raised when a settings payload is rejected before persistence.

    Attributes:
        errors: Field-level error details from validation
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class SamplingRates(BaseModel):
    """Sampling rate per sensor channel, in Hz."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ecg: int = 250
    ppg: int = 100
    imu: int = 100
    gsr: int = 25

    @field_validator("ecg", "ppg", "imu", "gsr")
    @classmethod
    def _supported_rate(cls, value: int) -> int:
        if value not in SUPPORTED_RATES_HZ:
            rates = ", ".join(str(rate) for rate in SUPPORTED_RATES_HZ)
            raise ValueError(f"Unsupported sampling rate {value} Hz (choose from {rates})")
        return value


class DeviceSettingsConfig(BaseModel):
    """Per-device configuration stored in the device's settings payload."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    sampling_rates: SamplingRates = Field(default_factory=SamplingRates)
    model: Literal["neuraband_B_float16.tflite", "neuraband_B_int8.tflite"] = (
        ModelVariant.FLOAT16.value
    )

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON payload stored on the device row."""
        return self.model_dump(by_alias=True)


DEFAULT_SETTINGS = DeviceSettingsConfig()


def validate_settings(payload: Any) -> DeviceSettingsConfig:
    """Validate a settings payload.

    Args:
        payload: Decoded JSON payload (camelCase or snake_case keys)

    Returns:
        Validated settings

    Raises:
        SettingsValidationError: If a rate or model variant is unsupported
    """
    if isinstance(payload, DeviceSettingsConfig):
        return payload
    try:
        return DeviceSettingsConfig.model_validate(payload)
    except ValidationError as e:
        details = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in e.errors()
        ]
        raise SettingsValidationError("Invalid device settings", errors=details) from e


def settings_or_default(payload: Any) -> DeviceSettingsConfig:
    """Read stored settings, falling back to defaults for empty or legacy payloads."""
    if not payload:
        return DEFAULT_SETTINGS
    try:
        return validate_settings(payload)
    except SettingsValidationError as e:
        logger.warning("Stored settings invalid, using defaults", errors=e.errors)
        return DEFAULT_SETTINGS
