"""Database models."""

from neuraband_server.models.base import Base
from neuraband_server.models.biosignal import Biosignal
from neuraband_server.models.device import Device
from neuraband_server.models.session import RecordingSession
from neuraband_server.models.user import User

__all__ = [
    "Base",
    "Biosignal",
    "Device",
    "RecordingSession",
    "User",
]
