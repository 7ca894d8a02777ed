"""Per-sample biosignal record."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from neuraband_server.models.base import ID_LENGTH, Base, UserScopedMixin


class Biosignal(Base, UserScopedMixin):
    """Scalar readings from one accepted sample.

    Raw waveforms stay in memory only. Rows are keyed by (session, timestamp)
    so that a retried write of the same sample is a no-op.
    """

    __tablename__ = "biosignals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    session_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("sessions.id"),
        nullable=False,
        index=True,
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    heart_rate: Mapped[float | None] = mapped_column(Float, comment="BPM")
    spo2: Mapped[float | None] = mapped_column(Float, comment="Blood oxygen %")
    temperature: Mapped[float | None] = mapped_column(Float, comment="Body temperature °C")
    stress_score: Mapped[float | None] = mapped_column(Float, comment="0-100")
    motion_score: Mapped[float | None] = mapped_column(Float, comment="0-100")
    hrv: Mapped[float | None] = mapped_column(Float, comment="Latest HRV value (ms)")

    __table_args__ = (
        UniqueConstraint("session_id", "timestamp", name="uq_biosignals_session_timestamp"),
        {"sqlite_autoincrement": True},
    )

    # For upsert operations
    __upsert_index_elements__ = ["session_id", "timestamp"]
