"""Error classification for the live ingestion path.

Nothing in the live path is fatal to the process. Every failure is mapped to
one of a few categories, logged with context, and handled by the caller:

    DECODE_ERROR: Malformed frame. Dropped, feed stays open.
    CONNECTION_ERROR: Feed handshake or keep-alive failed. Session closes,
        user may retry.
    PERSISTENCE_ERROR: Durable write failed. Best effort, live display is
        unaffected.
    VALIDATION_ERROR: Settings payload rejected before persistence.
    INTERNAL_ERROR: Anything unexpected.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from websockets.exceptions import WebSocketException

from neuraband_server.schemas.sample import SampleDecodeError
from neuraband_server.schemas.settings import SettingsValidationError
from neuraband_server.services.feed import FeedConnectionError

logger = structlog.get_logger()


class IngestErrorType(str, Enum):
    """Categories of live-path failures."""

    DECODE_ERROR = "decode_error"
    CONNECTION_ERROR = "connection_error"
    PERSISTENCE_ERROR = "persistence_error"
    VALIDATION_ERROR = "validation_error"
    INTERNAL_ERROR = "internal_error"


# Whether the failure should close the feed
CLOSES_FEED: dict[IngestErrorType, bool] = {
    IngestErrorType.DECODE_ERROR: False,
    IngestErrorType.CONNECTION_ERROR: True,
    IngestErrorType.PERSISTENCE_ERROR: False,
    IngestErrorType.VALIDATION_ERROR: False,
    IngestErrorType.INTERNAL_ERROR: True,
}


@dataclass
class IngestError:
    """Classified failure.

    Attributes:
        error_type: Category of the failure
        message: Human-readable message
        details: Extra context for logs and API responses
        closes_feed: Whether the session has to close
        original_exception: The exception that was classified
    """

    error_type: IngestErrorType
    message: str
    details: dict[str, Any]
    closes_feed: bool
    original_exception: Exception | None = None

    def to_log_dict(self) -> dict[str, Any]:
        """Convert to dict for structured logging."""
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "closes_feed": self.closes_feed,
            **self.details,
        }


class ErrorClassifier:
    """Maps exceptions to ``IngestError`` and logs them.

    Usage:
        classifier = ErrorClassifier()

        try:
            await store.insert_biosignal(session_id, user_id, sample)
        except Exception as e:
            classifier.classify(e, context={"session_id": session_id})
    """

    def __init__(self) -> None:
        self.logger = logger.bind(component="error_classifier")

    def classify(
        self,
        exception: Exception,
        context: dict[str, Any] | None = None,
    ) -> IngestError:
        """Classify and log an exception.

        Args:
            exception: The exception to classify
            context: Additional context (user_id, session_id, etc.)

        Returns:
            IngestError with category and handling hint
        """
        context = context or {}

        if isinstance(exception, SampleDecodeError):
            error_type = IngestErrorType.DECODE_ERROR
            self.logger.warning("Frame decode error", error=str(exception), **context)
        elif isinstance(exception, FeedConnectionError | WebSocketException | OSError):
            error_type = IngestErrorType.CONNECTION_ERROR
            self.logger.error("Feed connection error", error=str(exception), **context)
        elif isinstance(exception, SQLAlchemyError):
            error_type = IngestErrorType.PERSISTENCE_ERROR
            self.logger.error(
                "Persistence error",
                error_type=type(exception).__name__,
                error=str(exception)[:500],
                **context,
            )
        elif isinstance(exception, SettingsValidationError):
            error_type = IngestErrorType.VALIDATION_ERROR
            self.logger.info("Settings rejected", errors=exception.errors, **context)
        else:
            error_type = IngestErrorType.INTERNAL_ERROR
            self.logger.exception(
                "Unexpected ingestion error",
                error_type=type(exception).__name__,
                error=str(exception),
                **context,
            )

        return IngestError(
            error_type=error_type,
            message=f"{type(exception).__name__}: {exception}",
            details={"exception": type(exception).__name__, **context},
            closes_feed=CLOSES_FEED[error_type],
            original_exception=exception,
        )
