"""Initial schema: users, devices, sessions and biosignals.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the monitoring tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "devices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False, comment="Owning user ID"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "settings",
            sa.JSON(),
            nullable=True,
            comment="Sampling rates and model variant",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_devices_user_id", "devices", ["user_id"])

    op.create_table(
        "sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False, comment="Owning user ID"),
        sa.Column(
            "device_id",
            sa.String(36),
            sa.ForeignKey("devices.id"),
            nullable=False,
        ),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "end_time",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="When the feed closed (null while open)",
        ),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("ix_sessions_device_id", "sessions", ["device_id"])
    op.create_index("ix_sessions_user_device", "sessions", ["user_id", "device_id"])

    op.create_table(
        "biosignals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False, comment="Owning user ID"),
        sa.Column(
            "session_id",
            sa.String(36),
            sa.ForeignKey("sessions.id"),
            nullable=False,
        ),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("heart_rate", sa.Float(), nullable=True, comment="BPM"),
        sa.Column("spo2", sa.Float(), nullable=True, comment="Blood oxygen %"),
        sa.Column("temperature", sa.Float(), nullable=True, comment="Body temperature °C"),
        sa.Column("stress_score", sa.Float(), nullable=True, comment="0-100"),
        sa.Column("motion_score", sa.Float(), nullable=True, comment="0-100"),
        sa.Column("hrv", sa.Float(), nullable=True, comment="Latest HRV value (ms)"),
        sa.UniqueConstraint(
            "session_id", "timestamp", name="uq_biosignals_session_timestamp"
        ),
    )
    op.create_index("ix_biosignals_user_id", "biosignals", ["user_id"])
    op.create_index("ix_biosignals_session_id", "biosignals", ["session_id"])
    op.create_index("ix_biosignals_timestamp", "biosignals", ["timestamp"])


def downgrade() -> None:
    """Drop the monitoring tables."""
    op.drop_table("biosignals")
    op.drop_table("sessions")
    op.drop_table("devices")
    op.drop_table("users")
