"""Tests for the synthetic feed."""

import pytest

from neuraband_server.schemas.sample import decode_sample
from neuraband_server.services.feed import FeedConnectionError
from neuraband_server.services.mock_feed import MockFeed


class TestMockFrames:
    """Generated frame content."""

    @pytest.mark.asyncio
    async def test_frames_decode_into_complete_samples(self):
        """Test that every generated frame decodes with all fields in range."""
        feed = MockFeed("mock-1", interval=0, max_frames=3, seed=42)
        await feed.connect()

        frames = [raw async for raw in feed.frames()]

        assert len(frames) == 3
        for raw in frames:
            sample = decode_sample(raw)
            assert sample.heart_rate is not None and 65 <= sample.heart_rate <= 85
            assert sample.stress_score is not None and 0 <= sample.stress_score <= 100
            assert sample.ecg is not None and len(sample.ecg) == 25
            assert sample.imu is not None and len(sample.imu.x) == 25
            assert sample.hrv is not None and len(sample.hrv.values) == 1
            assert sample.lead_off is False

    def test_seed_makes_scalars_reproducible(self):
        """Test that the same seed produces the same frame."""
        first = MockFeed("mock-1", seed=7).generate_frame()
        second = MockFeed("mock-1", seed=7).generate_frame()

        assert first["heartRate"] == second["heartRate"]
        assert first["ecg"] == second["ecg"]


class TestMockFeedLifecycle:
    """Connect and close behaviour."""

    @pytest.mark.asyncio
    async def test_frames_require_connect(self):
        """Test that iterating before connect raises FeedConnectionError."""
        feed = MockFeed("mock-1", interval=0)

        with pytest.raises(FeedConnectionError):
            async for _ in feed.frames():
                pass

    @pytest.mark.asyncio
    async def test_close_stops_the_stream(self):
        """Test that close ends iteration and a closed feed cannot reconnect."""
        feed = MockFeed("mock-1", interval=10)
        await feed.connect()
        frames = feed.frames()

        await anext(frames)
        await feed.close()

        with pytest.raises(StopAsyncIteration):
            await anext(frames)
        with pytest.raises(FeedConnectionError):
            await feed.connect()
