"""
Unit Tests - HTTP API
"""
import httpx
import pytest

from analytics_pipeline.database.store import InMemoryProjectionStore
from analytics_pipeline.main import app
from analytics_pipeline.pipeline import AnalyticsPipeline


class FakePublisher:
    """Publisher double that keeps what it was given"""

    def __init__(self, connected: bool = True):
        self.connected = connected
        self.events = []

    async def publish(self, event):
        self.events.append(event)
        return True

    async def publish_batch(self, events):
        for event in events:
            await self.publish(event)
        return len(events)

    async def stop(self):
        self.connected = False


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
async def pipeline(publisher):
    pipeline = AnalyticsPipeline(store=InMemoryProjectionStore(action_log_limit=0), publisher=publisher)
    app.state.pipeline = pipeline
    yield pipeline
    if pipeline.scheduler.running:
        await pipeline.scheduler.stop()
    app.state.pipeline = None


@pytest.fixture
async def client(pipeline):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestHealthEndpoints:
    """Tests for health and readiness"""

    async def test_liveness(self, client):
        """Test liveness never depends on components"""
        response = await client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}
        assert "X-Request-ID" in response.headers

    async def test_degraded_without_scheduler(self, client):
        """Test a stopped scheduler and consumer degrade the service"""
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["checks"]["projection_store"]["status"] == "healthy"
        assert body["checks"]["scheduler"]["status"] == "stopped"

    async def test_not_ready_without_scheduler(self, client):
        """Test readiness requires a ticking scheduler"""
        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 503
        assert response.json()["reason"] == "scheduler_stopped"

    async def test_ready(self, client, pipeline):
        """Test readiness once the scheduler runs"""
        pipeline.scheduler.start()

        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    async def test_no_pipeline(self, client):
        """Test requests before startup are rejected"""
        app.state.pipeline = None

        response = await client.get("/api/v1/health")

        assert response.status_code == 503


class TestTrackingEndpoints:
    """Tests for event tracking"""

    async def test_track(self, client, publisher):
        """Test a single event is accepted and published"""
        response = await client.post(
            "/api/v1/analytics/track",
            json={"userId": "u1", "productId": "p1", "action": "product_view"},
        )

        assert response.status_code == 202
        assert response.json() == {"success": True}
        assert publisher.events[0].user_id == "u1"
        assert publisher.events[0].product_id == "p1"

    async def test_track_unknown_action(self, client, publisher):
        """Test unknown actions fail validation"""
        response = await client.post(
            "/api/v1/analytics/track",
            json={"userId": "u1", "action": "unknown_action"},
        )

        assert response.status_code == 422
        assert publisher.events == []

    async def test_track_missing_user(self, client):
        """Test blank user ids fail validation"""
        response = await client.post(
            "/api/v1/analytics/track",
            json={"userId": " ", "action": "purchase"},
        )

        assert response.status_code == 422

    async def test_track_batch(self, client, publisher):
        """Test a batch reports how many events it accepted"""
        response = await client.post(
            "/api/v1/analytics/track/batch",
            json=[
                {"userId": "u1", "action": "product_view", "productId": "p1"},
                {"userId": "u2", "action": "shop_visit", "shopId": "s1"},
            ],
        )

        assert response.status_code == 202
        assert response.json() == {"success": True, "count": 2}
        assert [e.user_id for e in publisher.events] == ["u1", "u2"]

    async def test_publisher_unavailable(self, client, publisher):
        """Test tracking is refused without a connected producer"""
        publisher.connected = False

        response = await client.post(
            "/api/v1/analytics/track",
            json={"userId": "u1", "action": "purchase"},
        )

        assert response.status_code == 503


class TestMetricsEndpoint:
    async def test_metrics_exposed(self, client):
        """Test the Prometheus endpoint serves pipeline metrics"""
        response = await client.get("/metrics/")

        assert response.status_code == 200
        assert "analytics_events_received_total" in response.text
