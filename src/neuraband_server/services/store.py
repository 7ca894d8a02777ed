"""Durable store for devices, sessions and biosignal rows.

``BiosignalStore`` is the narrow interface the live core depends on.
``SQLAlchemyStore`` implements it on the relational schema and adds an
in-process change feed: subscribers registered for a user receive every
biosignal row inserted for that user after it is committed.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from neuraband_server.models.base import new_id
from neuraband_server.models.biosignal import Biosignal
from neuraband_server.models.device import Device
from neuraband_server.models.session import RecordingSession
from neuraband_server.models.user import User
from neuraband_server.schemas.sample import Sample
from neuraband_server.schemas.settings import DeviceSettingsConfig, validate_settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class BiosignalRecord:
    """Detached copy of one stored biosignal row."""

    session_id: str
    user_id: str
    timestamp: datetime
    heart_rate: float | None
    spo2: float | None
    temperature: float | None
    stress_score: float | None
    motion_score: float | None
    hrv: float | None

    @classmethod
    def from_sample(cls, session_id: str, user_id: str, sample: Sample) -> BiosignalRecord:
        return cls(
            session_id=session_id,
            user_id=user_id,
            timestamp=sample.received_at,
            heart_rate=sample.heart_rate,
            spo2=sample.spo2,
            temperature=sample.temperature,
            stress_score=sample.stress_score,
            motion_score=sample.motion_score,
            hrv=sample.latest_hrv,
        )

    @classmethod
    def from_row(cls, row: Biosignal) -> BiosignalRecord:
        return cls(
            session_id=row.session_id,
            user_id=row.user_id,
            timestamp=row.timestamp,
            heart_rate=row.heart_rate,
            spo2=row.spo2,
            temperature=row.temperature,
            stress_score=row.stress_score,
            motion_score=row.motion_score,
            hrv=row.hrv,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "timestamp": self.timestamp,
            "heart_rate": self.heart_rate,
            "spo2": self.spo2,
            "temperature": self.temperature,
            "stress_score": self.stress_score,
            "motion_score": self.motion_score,
            "hrv": self.hrv,
        }


BiosignalListener = Callable[[BiosignalRecord], None]


class DeviceNotFoundError(LookupError):
    """Raised when a device does not exist for the given user."""


class BiosignalStore(Protocol):
    """Operations the live core needs from durable storage."""

    async def create_session(self, user_id: str, device_id: str) -> str: ...

    async def end_session(self, session_id: str, end_time: datetime | None = None) -> None: ...

    async def insert_biosignal(self, session_id: str, user_id: str, sample: Sample) -> bool: ...


class SQLAlchemyStore:
    """Relational implementation of the durable store.

    Args:
        session_factory: SQLAlchemy async session factory
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory
        self._listeners: dict[str, list[BiosignalListener]] = defaultdict(list)
        self.logger = logger.bind(component="store")

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> User | None:
        """Fetch a user, or None if the id is unknown."""
        async with self.session_factory() as session:
            return await session.get(User, user_id)

    async def create_user(self, email: str | None = None, display_name: str | None = None) -> User:
        """Register a user."""
        async with self.session_factory() as session:
            user = User(id=new_id(), email=email, display_name=display_name)
            session.add(user)
            await session.commit()
            await session.refresh(user)
        self.logger.info("User created", user_id=user.id)
        return user

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(self, user_id: str, device_id: str) -> str:
        """Insert an open session row and return its id."""
        async with self.session_factory() as session:
            session_id = new_id()
            session.add(RecordingSession(id=session_id, user_id=user_id, device_id=device_id))
            await session.commit()
        self.logger.info(
            "Session created", session_id=session_id, user_id=user_id, device_id=device_id
        )
        return session_id

    async def end_session(self, session_id: str, end_time: datetime | None = None) -> None:
        """Stamp a session's end time. Already-closed sessions keep their first stamp."""
        async with self.session_factory() as session:
            await session.execute(
                update(RecordingSession)
                .where(RecordingSession.id == session_id)
                .where(RecordingSession.end_time.is_(None))
                .values(end_time=end_time or datetime.now(UTC))
            )
            await session.commit()
        self.logger.info("Session ended", session_id=session_id)

    async def close_open_sessions(self, user_id: str | None = None) -> int:
        """Stamp every session still open, e.g. after an unclean shutdown.

        Returns:
            Number of sessions closed
        """
        stmt = (
            update(RecordingSession)
            .where(RecordingSession.end_time.is_(None))
            .values(end_time=datetime.now(UTC))
        )
        if user_id is not None:
            stmt = stmt.where(RecordingSession.user_id == user_id)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        closed = result.rowcount or 0
        if closed:
            self.logger.warning("Closed stale sessions", count=closed, user_id=user_id)
        return closed

    async def list_sessions(self, user_id: str, limit: int = 50) -> Sequence[RecordingSession]:
        """Most recent sessions for a user, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(RecordingSession)
                .where(RecordingSession.user_id == user_id)
                .order_by(RecordingSession.start_time.desc())
                .limit(limit)
            )
            return result.scalars().all()

    # ------------------------------------------------------------------
    # Biosignals
    # ------------------------------------------------------------------

    async def insert_biosignal(self, session_id: str, user_id: str, sample: Sample) -> bool:
        """Persist the scalar readings of a sample.

        Writes are keyed by (session, timestamp); a duplicate is ignored.

        Returns:
            True if a new row was written, False for a duplicate
        """
        record = BiosignalRecord.from_sample(session_id, user_id, sample)
        async with self.session_factory() as session:
            insert = pg_insert if session.bind.dialect.name == "postgresql" else sqlite_insert
            stmt = (
                insert(Biosignal)
                .values(**record.to_dict())
                .on_conflict_do_nothing(index_elements=Biosignal.__upsert_index_elements__)
                .returning(Biosignal.id)
            )
            result = await session.execute(stmt)
            inserted = result.scalar_one_or_none() is not None
            await session.commit()

        if inserted:
            self._notify(record)
        return inserted

    async def recent_biosignals(self, user_id: str, limit: int = 20) -> list[BiosignalRecord]:
        """The newest ``limit`` rows for a user, returned oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Biosignal)
                .where(Biosignal.user_id == user_id)
                .order_by(Biosignal.timestamp.desc())
                .limit(limit)
            )
            rows = result.scalars().all()
        return [BiosignalRecord.from_row(row) for row in reversed(rows)]

    def subscribe(self, user_id: str, listener: BiosignalListener) -> Callable[[], None]:
        """Register for rows inserted for a user.

        Returns:
            Callable that removes the registration
        """
        self._listeners[user_id].append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(user_id, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(user_id, None)

        return unsubscribe

    def _notify(self, record: BiosignalRecord) -> None:
        for listener in list(self._listeners.get(record.user_id, ())):
            try:
                listener(record)
            except Exception as e:
                self.logger.exception(
                    "Biosignal listener failed", user_id=record.user_id, error=str(e)
                )

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def list_devices(self, user_id: str) -> Sequence[Device]:
        """Devices registered to a user, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Device).where(Device.user_id == user_id).order_by(Device.created_at.asc())
            )
            return result.scalars().all()

    async def get_device(self, user_id: str, device_id: str) -> Device:
        """Fetch one device.

        Raises:
            DeviceNotFoundError: If the user has no such device
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(Device).where(Device.id == device_id, Device.user_id == user_id)
            )
            device = result.scalar_one_or_none()
        if device is None:
            raise DeviceNotFoundError(f"Device {device_id} not found")
        return device

    async def create_device(
        self,
        user_id: str,
        name: str,
        settings: DeviceSettingsConfig | None = None,
    ) -> Device:
        """Register a device for a user."""
        async with self.session_factory() as session:
            device = Device(
                user_id=user_id,
                name=name,
                settings=(settings or DeviceSettingsConfig()).to_payload(),
            )
            session.add(device)
            await session.commit()
            await session.refresh(device)
        self.logger.info("Device registered", device_id=device.id, user_id=user_id)
        return device

    async def update_device_settings(
        self,
        user_id: str,
        device_id: str,
        payload: DeviceSettingsConfig | dict[str, Any],
    ) -> Device:
        """Validate and store a device's settings payload.

        Validation runs before the database is touched.

        Raises:
            SettingsValidationError: If the payload is invalid
            DeviceNotFoundError: If the user has no such device
        """
        config = validate_settings(payload)
        async with self.session_factory() as session:
            result = await session.execute(
                select(Device).where(Device.id == device_id, Device.user_id == user_id)
            )
            device = result.scalar_one_or_none()
            if device is None:
                raise DeviceNotFoundError(f"Device {device_id} not found")
            device.settings = config.to_payload()
            await session.commit()
            await session.refresh(device)
        self.logger.info("Device settings updated", device_id=device_id, user_id=user_id)
        return device


class InMemoryStore:
    """Process-local store for simulations and tests.

    Honors the same rules as the relational store: duplicate (session,
    timestamp) writes are ignored and ending a session keeps its first stamp.
    """

    def __init__(self) -> None:
        self.sessions: dict[str, dict[str, Any]] = {}
        self.rows: list[BiosignalRecord] = []
        self._keys: set[tuple[str, datetime]] = set()

    async def create_session(self, user_id: str, device_id: str) -> str:
        session_id = new_id()
        self.sessions[session_id] = {
            "user_id": user_id,
            "device_id": device_id,
            "start_time": datetime.now(UTC),
            "end_time": None,
        }
        return session_id

    async def end_session(self, session_id: str, end_time: datetime | None = None) -> None:
        row = self.sessions.get(session_id)
        if row is not None and row["end_time"] is None:
            row["end_time"] = end_time or datetime.now(UTC)

    async def insert_biosignal(self, session_id: str, user_id: str, sample: Sample) -> bool:
        key = (session_id, sample.received_at)
        if key in self._keys:
            return False
        self._keys.add(key)
        self.rows.append(BiosignalRecord.from_sample(session_id, user_id, sample))
        return True

    def open_sessions(self) -> list[str]:
        """Ids of sessions without an end time."""
        return [sid for sid, row in self.sessions.items() if row["end_time"] is None]
