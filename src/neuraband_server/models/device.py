"""Registered wearable device model."""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from neuraband_server.models.base import (
    ID_LENGTH,
    Base,
    TimestampMixin,
    UserScopedMixin,
    new_id,
)


class Device(Base, TimestampMixin, UserScopedMixin):
    """A NeuraBand registered to a user.

    ``settings`` holds the device configuration payload (sampling rates and
    on-device model) exactly as the dashboard saves it. It is validated by
    ``DeviceSettingsConfig`` before every write.
    """

    __tablename__ = "devices"

    id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        primary_key=True,
        default=new_id,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    settings: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Sampling rates and model variant"
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Device(id={self.id}, name={self.name}, user_id={self.user_id})>"
