"""Device registration and settings endpoints."""

from typing import Any

from litestar import Router, get, post, put
from litestar.exceptions import NotFoundException, ValidationException
from litestar.status_codes import HTTP_200_OK, HTTP_201_CREATED
from pydantic import BaseModel, Field

from neuraband_server.core.auth import api_key_guard
from neuraband_server.models.device import Device
from neuraband_server.schemas.settings import (
    SettingsValidationError,
    settings_or_default,
    validate_settings,
)
from neuraband_server.services.monitor import MonitorRegistry
from neuraband_server.services.store import DeviceNotFoundError, SQLAlchemyStore


class DeviceCreate(BaseModel):
    """Request body for registering a device."""

    name: str = Field(min_length=1, max_length=255, description="Display name")
    settings: dict[str, Any] | None = Field(
        default=None, description="Initial settings payload (defaults if omitted)"
    )


def device_to_dict(device: Device) -> dict[str, Any]:
    """Serialize a device row for API responses."""
    return {
        "id": device.id,
        "name": device.name,
        "settings": settings_or_default(device.settings).to_payload(),
        "created_at": device.created_at.isoformat() if device.created_at else None,
    }


def _invalid_settings(error: SettingsValidationError) -> ValidationException:
    return ValidationException(detail=str(error), extra=error.errors)


@get("/users/{user_id:str}/devices", status_code=HTTP_200_OK)
async def list_devices(current_user: str, store: SQLAlchemyStore) -> list[dict[str, Any]]:
    """List devices registered to a user, oldest first."""
    devices = await store.list_devices(current_user)
    return [device_to_dict(device) for device in devices]


@post("/users/{user_id:str}/devices", status_code=HTTP_201_CREATED)
async def create_device(
    current_user: str,
    data: DeviceCreate,
    store: SQLAlchemyStore,
) -> dict[str, Any]:
    """Register a new device.

    Settings are validated before anything is written.
    """
    try:
        config = validate_settings(data.settings) if data.settings else None
    except SettingsValidationError as e:
        raise _invalid_settings(e) from e

    device = await store.create_device(current_user, data.name, config)
    return device_to_dict(device)


@get("/users/{user_id:str}/devices/{device_id:str}", status_code=HTTP_200_OK)
async def get_device(
    current_user: str,
    device_id: str,
    store: SQLAlchemyStore,
) -> dict[str, Any]:
    """Get one device."""
    try:
        device = await store.get_device(current_user, device_id)
    except DeviceNotFoundError as e:
        raise NotFoundException(str(e)) from e
    return device_to_dict(device)


@put("/users/{user_id:str}/devices/{device_id:str}/settings", status_code=HTTP_200_OK)
async def update_device_settings(
    current_user: str,
    device_id: str,
    data: dict[str, Any],
    store: SQLAlchemyStore,
    registry: MonitorRegistry,
) -> dict[str, Any]:
    """Save sampling rates and model variant for a device.

    Unsupported rates or model names are rejected with 400 before the store
    is called. If the device is the user's active one, the live dashboard is
    republished with the new settings.

    Example:
        PUT /api/v1/users/<id>/devices/<device>/settings
        {"samplingRates": {"ecg": 250, "ppg": 100, "imu": 100, "gsr": 25},
         "model": "neuraband_B_int8.tflite"}
    """
    try:
        config = validate_settings(data)
    except SettingsValidationError as e:
        raise _invalid_settings(e) from e

    try:
        device = await store.update_device_settings(current_user, device_id, config)
    except DeviceNotFoundError as e:
        raise NotFoundException(str(e)) from e

    monitor = registry.get(current_user)
    if monitor is not None and monitor.device_id == device_id:
        monitor.update_settings(config)

    return device_to_dict(device)


devices_router = Router(
    path="/",
    guards=[api_key_guard],
    route_handlers=[list_devices, create_device, get_device, update_device_settings],
)
