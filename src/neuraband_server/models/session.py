"""Recording session model."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from neuraband_server.models.base import (
    ID_LENGTH,
    Base,
    UserScopedMixin,
    new_id,
    utc_now,
)


class RecordingSession(Base, UserScopedMixin):
    """One continuous period of data collection for a (user, device) pair.

    A session is open while ``end_time`` is NULL. At most one open session per
    pair is enforced by the lifecycle service, not by the database.
    """

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        primary_key=True,
        default=new_id,
    )
    device_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("devices.id"),
        nullable=False,
        index=True,
    )
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the feed closed (null while open)",
    )

    __table_args__ = (Index("ix_sessions_user_device", "user_id", "device_id"),)

    @property
    def is_open(self) -> bool:
        """Check if the session is still collecting data."""
        return self.end_time is None

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<RecordingSession(id={self.id}, device_id={self.device_id}, open={self.is_open})>"
        )
