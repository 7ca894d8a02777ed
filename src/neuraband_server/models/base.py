"""Declarative base and shared columns for the NeuraBand tables."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ID_LENGTH = 36


def utc_now() -> datetime:
    """Aware UTC timestamp used for column defaults."""
    return datetime.now(UTC)


def new_id() -> str:
    """String UUID primary key for users, devices and sessions."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Metadata root shared by the ORM models and alembic."""

    pass


class TimestampMixin:
    """Row creation and modification stamps for users and devices.

    Biosignal rows and sessions carry their own domain timestamps instead.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )


class UserScopedMixin:
    """Owner column for devices, sessions and biosignals.

    History reads and the store change feed are filtered on this column, so it
    is indexed on every table that carries it.
    """

    user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        nullable=False,
        index=True,
        comment="Owning user ID",
    )
