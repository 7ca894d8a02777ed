"""Tests for live-path error classification."""

import pytest
from sqlalchemy.exc import OperationalError

from neuraband_server.schemas.sample import SampleDecodeError
from neuraband_server.schemas.settings import SettingsValidationError
from neuraband_server.services.errors import ErrorClassifier, IngestErrorType
from neuraband_server.services.feed import FeedConnectionError


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


class TestErrorClassification:
    """Error categories and whether they close the feed."""

    def test_decode_error_keeps_feed_open(self, classifier: ErrorClassifier):
        """Test that a malformed frame is a decode error that keeps the feed."""
        error = classifier.classify(SampleDecodeError("bad frame"), context={"user_id": "u1"})

        assert error.error_type == IngestErrorType.DECODE_ERROR
        assert not error.closes_feed
        assert error.details["user_id"] == "u1"

    def test_connection_errors_close_feed(self, classifier: ErrorClassifier):
        """Test that handshake and socket failures close the feed."""
        for exc in (FeedConnectionError("refused"), OSError("unreachable")):
            error = classifier.classify(exc)
            assert error.error_type == IngestErrorType.CONNECTION_ERROR
            assert error.closes_feed

    def test_database_error_is_persistence(self, classifier: ErrorClassifier):
        """Test that SQLAlchemy errors are persistence errors that keep the feed."""
        exc = OperationalError("INSERT", {}, Exception("database is locked"))

        error = classifier.classify(exc, context={"session_id": "s1"})

        assert error.error_type == IngestErrorType.PERSISTENCE_ERROR
        assert not error.closes_feed
        assert error.original_exception is exc

    def test_settings_rejection(self, classifier: ErrorClassifier):
        """Test that rejected settings are validation errors."""
        error = classifier.classify(SettingsValidationError("Invalid device settings"))

        assert error.error_type == IngestErrorType.VALIDATION_ERROR
        assert not error.closes_feed

    def test_unknown_error_is_internal(self, classifier: ErrorClassifier):
        """Test that anything else is an internal error that closes the feed."""
        error = classifier.classify(KeyError("surprise"))

        assert error.error_type == IngestErrorType.INTERNAL_ERROR
        assert error.closes_feed
        assert error.to_log_dict()["exception"] == "KeyError"
