"""
Unit tests for the webhook receiver app.
Run: pytest tests/unit/test_webhook_app.py -v
"""
import pytest
from httpx import ASGITransport, AsyncClient
from structlog.testing import capture_logs

from subscriber.webhook.app import create_app


EVENT = {
    "id": "4a1b",
    "topic": "sampleTopic1",
    "subject": "sensors/temperature",
    "eventType": "recordInserted",
    "eventTime": "2024-01-15T10:30:00Z",
    "dataVersion": "1.0",
    "data": {"temperature": 45.5},
}


@pytest.fixture
async def client():
    app = create_app("/api/subscriber")
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://subscriber") as c:
        yield c


class TestWebhookApp:
    """Tests for event delivery and health endpoints."""

    async def test_batch_of_events_is_accepted(self, client):
        with capture_logs() as logs:
            response = await client.post("/api/subscriber", json=[EVENT, {**EVENT, "id": "4a1c"}])

        assert response.status_code == 200
        assert response.json() == {"received": 2}
        received = [log for log in logs if log["event"] == "event.received"]
        assert [log["event_id"] for log in received] == ["4a1b", "4a1c"]
        assert received[0]["event_type"] == "recordInserted"

    async def test_single_cloud_event_is_accepted(self, client):
        cloud_event = {"id": "c1", "source": "sampleTopic1", "type": "recordInserted", "specversion": "1.0"}

        with capture_logs() as logs:
            response = await client.post("/api/subscriber", json=cloud_event)

        assert response.status_code == 200
        assert response.json() == {"received": 1}
        [log] = [log for log in logs if log["event"] == "event.received"]
        assert log["topic"] == "sampleTopic1"
        assert log["event_type"] == "recordInserted"

    async def test_invalid_json_is_rejected(self, client):
        response = await client.post(
            "/api/subscriber", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_PAYLOAD"

    @pytest.mark.parametrize("payload", [[], [1, 2], "text", None])
    async def test_non_event_payloads_are_rejected(self, client, payload):
        response = await client.post("/api/subscriber", json=payload)

        assert response.status_code == 400

    async def test_response_carries_request_id(self, client):
        response = await client.post("/api/subscriber", json=EVENT, headers={"x-request-id": "abc"})

        assert response.headers["x-request-id"] == "abc"

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
