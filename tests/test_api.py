"""API endpoint tests."""

import pytest
from litestar import Litestar
from litestar.status_codes import (
    HTTP_200_OK,
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)
from litestar.testing import AsyncTestClient

from neuraband_server.api.dependencies import REGISTRY_STATE_KEY, STORE_STATE_KEY
from neuraband_server.app import build_lifespan, create_app
from neuraband_server.core.config import settings
from neuraband_server.services.monitor import MonitorRegistry
from neuraband_server.services.store import SQLAlchemyStore
from tests.helpers import FeedRecorder


@pytest.fixture
def registry(store: SQLAlchemyStore, feeds: FeedRecorder) -> MonitorRegistry:
    return MonitorRegistry(store, feeds)


@pytest.fixture
def app(session_factory, feeds, store, registry) -> Litestar:
    """App wired to the test database, without running the lifespan."""
    app = create_app(session_factory=session_factory, feed_factory=feeds)
    app.state[STORE_STATE_KEY] = store
    app.state[REGISTRY_STATE_KEY] = registry
    return app


@pytest.fixture
async def client(app: Litestar, registry: MonitorRegistry):
    """Create test client."""
    yield AsyncTestClient(app=app)
    await registry.shutdown()


def user_url(user, path: str = "") -> str:
    return f"/api/v1/users/{user.id}{path}"


class TestHealth:
    """Health endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncTestClient) -> None:
        """Test health check endpoint."""
        response = await client.get("/health")

        assert response.status_code == HTTP_200_OK
        data = response.json()
        assert data["status"] == "ok"
        assert "version" in data
        assert data["monitors"] == 0


class TestUsers:
    """User endpoints."""

    @pytest.mark.asyncio
    async def test_create_and_get_user(self, client: AsyncTestClient) -> None:
        """Test creating a user and reading it back."""
        response = await client.post("/api/v1/users", json={"email": "new@example.com"})
        assert response.status_code == HTTP_201_CREATED
        user_id = response.json()["id"]

        response = await client.get(f"/api/v1/users/{user_id}")
        assert response.status_code == HTTP_200_OK
        assert response.json()["email"] == "new@example.com"

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, client: AsyncTestClient, test_user) -> None:
        """Test that a second user with the same email is a conflict."""
        response = await client.post("/api/v1/users", json={"email": test_user.email})

        assert response.status_code == HTTP_409_CONFLICT

    @pytest.mark.asyncio
    async def test_unknown_user_is_not_found(self, client: AsyncTestClient) -> None:
        """Test that user-scoped routes 404 for an unknown user."""
        response = await client.get("/api/v1/users/nobody/devices")

        assert response.status_code == HTTP_404_NOT_FOUND


class TestDevices:
    """Device and settings endpoints."""

    @pytest.mark.asyncio
    async def test_device_crud(self, client: AsyncTestClient, test_user) -> None:
        """Test creating, listing and fetching devices."""
        response = await client.post(user_url(test_user, "/devices"), json={"name": "Band"})
        assert response.status_code == HTTP_201_CREATED
        device = response.json()
        assert device["settings"]["samplingRates"] == {
            "ecg": 250,
            "ppg": 100,
            "imu": 100,
            "gsr": 25,
        }

        response = await client.get(user_url(test_user, "/devices"))
        assert [d["id"] for d in response.json()] == [device["id"]]

        response = await client.get(user_url(test_user, f"/devices/{device['id']}"))
        assert response.json()["name"] == "Band"

        response = await client.get(user_url(test_user, "/devices/missing"))
        assert response.status_code == HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_update_settings(self, client: AsyncTestClient, test_user, test_device) -> None:
        """Test replacing a device's settings."""
        response = await client.put(
            user_url(test_user, f"/devices/{test_device.id}/settings"),
            json={
                "samplingRates": {"ecg": 500, "ppg": 100, "imu": 50, "gsr": 25},
                "model": "neuraband_B_int8.tflite",
            },
        )

        assert response.status_code == HTTP_200_OK
        data = response.json()
        assert data["settings"]["samplingRates"]["ecg"] == 500
        assert data["settings"]["model"] == "neuraband_B_int8.tflite"

    @pytest.mark.asyncio
    async def test_invalid_settings_rejected_before_store(
        self, client: AsyncTestClient, store: SQLAlchemyStore, test_user, test_device
    ) -> None:
        """Test that invalid settings are a 400 listing each bad field."""
        response = await client.put(
            user_url(test_user, f"/devices/{test_device.id}/settings"),
            json={"samplingRates": {"ecg": 123}, "model": "mystery.tflite"},
        )

        assert response.status_code == HTTP_400_BAD_REQUEST
        fields = {error["field"] for error in response.json()["extra"]}
        assert "samplingRates.ecg" in fields
        assert "model" in fields
        device = await store.get_device(test_user.id, test_device.id)
        assert device.settings["samplingRates"]["ecg"] == 250

    @pytest.mark.asyncio
    async def test_invalid_settings_on_create(self, client: AsyncTestClient, test_user) -> None:
        """Test that a new device with invalid settings is rejected."""
        response = await client.post(
            user_url(test_user, "/devices"),
            json={"name": "Band", "settings": {"samplingRates": {"gsr": 1000}}},
        )

        assert response.status_code == HTTP_400_BAD_REQUEST


class TestMonitor:
    """Live monitor controls."""

    @pytest.mark.asyncio
    async def test_monitor_flow(
        self,
        client: AsyncTestClient,
        registry: MonitorRegistry,
        feeds: FeedRecorder,
        test_user,
        test_device,
    ) -> None:
        """Test select, frame, pause, resume, disconnect and reconnect."""
        response = await client.get(user_url(test_user, "/monitor"))
        assert response.json()["connectionStatus"] == "idle"

        response = await client.post(
            user_url(test_user, "/monitor/device"), json={"device_id": test_device.id}
        )
        assert response.status_code == HTTP_200_OK
        assert response.json()["connection_status"] == "open"
        assert feeds.last.device_id == test_device.id

        monitor = registry.get(test_user.id)
        assert monitor is not None
        monitor.handle_frame('{"heartRate": 71, "stress": {"score": 75}}')
        await monitor.drain_writes()

        response = await client.get(user_url(test_user, "/monitor"))
        snapshot = response.json()
        assert snapshot["deviceId"] == test_device.id
        assert snapshot["heartRate"]["value"] == 71.0
        assert snapshot["stress"]["level"] == "High"

        response = await client.post(user_url(test_user, "/monitor/pause"))
        assert response.json()["is_playing"] is False
        response = await client.post(user_url(test_user, "/monitor/resume"))
        assert response.json()["is_playing"] is True

        response = await client.post(user_url(test_user, "/monitor/disconnect"))
        assert response.json()["connection_status"] == "closed"

        response = await client.post(user_url(test_user, "/monitor/connect"))
        assert response.json()["connection_status"] == "open"
        assert len(feeds.feeds) == 2

    @pytest.mark.asyncio
    async def test_settings_update_reaches_live_monitor(
        self, client: AsyncTestClient, registry: MonitorRegistry, test_user, test_device
    ) -> None:
        """Test that saved settings show up in the live snapshot."""
        await client.post(
            user_url(test_user, "/monitor/device"), json={"device_id": test_device.id}
        )

        await client.put(
            user_url(test_user, f"/devices/{test_device.id}/settings"),
            json={"model": "neuraband_B_int8.tflite"},
        )

        response = await client.get(user_url(test_user, "/monitor"))
        assert response.json()["settings"]["model"] == "neuraband_B_int8.tflite"

    @pytest.mark.asyncio
    async def test_connect_without_device_is_rejected(
        self, client: AsyncTestClient, test_user
    ) -> None:
        """Test that connect before any device selection is a 400."""
        response = await client.post(user_url(test_user, "/monitor/connect"))

        assert response.status_code == HTTP_400_BAD_REQUEST

    @pytest.mark.asyncio
    async def test_select_unknown_device(self, client: AsyncTestClient, test_user) -> None:
        """Test that selecting a missing device is a 404."""
        response = await client.post(
            user_url(test_user, "/monitor/device"), json={"device_id": "nope"}
        )

        assert response.status_code == HTTP_404_NOT_FOUND


class TestHistory:
    """History and session listing."""

    @pytest.mark.asyncio
    async def test_history_and_sessions(
        self, client: AsyncTestClient, registry: MonitorRegistry, test_user, test_device
    ) -> None:
        """Test that stored rows replay into a closed snapshot."""
        response = await client.get(user_url(test_user, "/history"))
        assert response.json() == {"user_id": test_user.id, "count": 0, "snapshot": None}

        await client.post(
            user_url(test_user, "/monitor/device"), json={"device_id": test_device.id}
        )
        monitor = registry.get(test_user.id)
        for bpm in (60, 62, 64):
            monitor.handle_frame(f'{{"heartRate": {bpm}}}')
        await monitor.drain_writes()

        response = await client.get(user_url(test_user, "/history"), params={"limit": 2})
        data = response.json()
        assert data["count"] == 2
        assert data["snapshot"]["heartRate"]["sparkline"] == [62.0, 64.0]
        assert data["snapshot"]["connectionStatus"] == "closed"

        response = await client.get(user_url(test_user, "/sessions"))
        sessions = response.json()
        assert len(sessions) == 1
        assert sessions[0]["is_open"] is True


class TestAuthentication:
    """Optional API key guard."""

    @pytest.mark.asyncio
    async def test_api_key_required_when_configured(
        self, client: AsyncTestClient, monkeypatch: pytest.MonkeyPatch, test_user
    ) -> None:
        """Test that a configured key is required everywhere except health."""
        monkeypatch.setattr(settings, "api_key", "secret-key")

        response = await client.get(user_url(test_user, "/devices"))
        assert response.status_code == HTTP_401_UNAUTHORIZED

        response = await client.get(
            user_url(test_user, "/devices"), headers={"X-API-Key": "wrong"}
        )
        assert response.status_code == HTTP_401_UNAUTHORIZED

        response = await client.get(
            user_url(test_user, "/devices"), headers={"Authorization": "Bearer secret-key"}
        )
        assert response.status_code == HTTP_200_OK

        response = await client.get("/health")
        assert response.status_code == HTTP_200_OK


class TestLifespan:
    """Startup and shutdown."""

    @pytest.mark.asyncio
    async def test_lifespan_closes_stale_sessions(
        self, session_factory, store: SQLAlchemyStore, feeds: FeedRecorder, test_user, test_device
    ) -> None:
        """Test that sessions left open by a previous process are stamped."""
        stale = await store.create_session(test_user.id, test_device.id)
        app = create_app(session_factory=session_factory, feed_factory=feeds)

        async with build_lifespan(session_factory, feeds)(app):
            assert isinstance(app.state[STORE_STATE_KEY], SQLAlchemyStore)
            assert isinstance(app.state[REGISTRY_STATE_KEY], MonitorRegistry)

        sessions = await store.list_sessions(test_user.id)
        assert [s.id for s in sessions] == [stale]
        assert not sessions[0].is_open
