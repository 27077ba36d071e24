import asyncio

import pytest
from fastapi.testclient import TestClient

from rcsx.clock import ManualClock
from rcsx.config import Settings
from rcsx.rbm.capture import EventFactory
from rcsx.rbm.runtime import SWEEP_JOB_ID, RbmRuntime
from rcsx.server import create_app


@pytest.fixture
def runtime(clock: ManualClock) -> RbmRuntime:
    return RbmRuntime(Settings(), clock=clock)


@pytest.fixture
def client(runtime: RbmRuntime) -> TestClient:
    return TestClient(create_app(runtime))


def test_callback_and_status(client: TestClient, factory: EventFactory) -> None:
    body = factory.suggestion_response("view_products", "Browse", "m0")

    response = client.post("/api/rbm/callback", json=body)

    assert response.status_code == 200
    assert response.json()["eventId"] == body["eventId"]

    status = client.get("/api/rbm/status").json()
    assert status["eventsProcessed"] == 1
    assert status["conversationCount"] == 1
    assert "suggestionResponse" in status["supportedEventTypes"]


def test_callback_rejections(client: TestClient) -> None:
    empty = client.post("/api/rbm/callback", content=b"")
    assert empty.status_code == 400
    assert empty.json()["error"] == "Missing request body"

    garbled = client.post("/api/rbm/callback", content=b"{not json", headers={"Content-Type": "application/json"})
    assert garbled.status_code == 400

    invalid = client.post("/api/rbm/callback", json={"eventType": "chatState"})
    assert invalid.status_code == 400
    assert "Missing required field: eventId" in invalid.json()["errors"]


def test_webhook_validation(client: TestClient) -> None:
    challenge = client.get("/api/rbm/callback", params={"hub.challenge": "xyz"})
    assert challenge.status_code == 200
    assert challenge.text == "xyz"

    ready = client.get("/api/rbm/callback")
    assert ready.json()["validation"] == "ready"


def test_validate_endpoint_presents_errors(client: TestClient) -> None:
    response = client.post(
        "/api/rcs/messages/validate",
        json={"text": "go", "suggestions": [{"action": {"text": "Yes"}}]},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["valid"] is False
    assert body["format"] == "singleFormat"
    assert body["errors"] == [
        {
            "type": "format",
            "message": "Message suggestion 1: Button actions need postback data for processing",
            "technical": "Message suggestion 1: Action must have postbackData field",
        }
    ]


def test_normalize_endpoint(client: TestClient) -> None:
    response = client.post("/api/rcs/messages/normalize", json={"messages": [{"text": "a"}, {"text": "b"}]})

    body = response.json()
    assert response.status_code == 200
    assert body["format"] == "arrayFormat"
    assert body["idsGenerated"] is True
    assert [message["text"] for message in body["envelope"]["messages"]] == ["a", "b"]
    assert body["wire"]["messages"] == [{"text": "a"}, {"text": "b"}]
    assert body["display"]["type"] == "multiple"


def test_normalize_endpoint_rejects_invalid_payloads(client: TestClient) -> None:
    response = client.post("/api/rcs/messages/normalize", json={"messages": []})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid message format"
    assert body["errors"][0]["technical"] == "Messages array cannot be empty"


def test_lifespan_runs_the_sweep_scheduler(runtime: RbmRuntime) -> None:
    with TestClient(create_app(runtime)) as client:
        assert client.get("/api/rbm/status").status_code == 200
        assert runtime.scheduler.running
        assert runtime.scheduler.get_job(SWEEP_JOB_ID) is not None

    assert not runtime.scheduler.running


def test_status_runs_off_the_event_loop(
    runtime: RbmRuntime, client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    threads: list[str] = []
    status = runtime.status

    def recording_status() -> dict[str, object]:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            threads.append("worker")
        else:
            threads.append("loop")
        return status()

    monkeypatch.setattr(runtime, "status", recording_status)

    assert client.get("/api/rbm/status").status_code == 200
    assert threads == ["worker"]
