import json

import httpx
import pytest

from rcsx.clock import ManualClock
from rcsx.rbm.callback import CallbackService, format_uptime
from rcsx.rbm.capture import EventFactory
from rcsx.rbm.events import EventType
from rcsx.rbm.forwarder import EventForwarder
from rcsx.rbm.router import EventRouter
from rcsx.rbm.tracker import ConversationState


@pytest.fixture
def service(clock: ManualClock) -> CallbackService:
    return CallbackService(clock=clock)


def test_valid_event_is_processed_and_tracked(service: CallbackService, factory: EventFactory) -> None:
    body = factory.suggestion_response("place_order", "Order", "m0")

    response = service.handle_callback(body)

    assert response.status_code == 200
    assert response.body["success"] is True
    assert response.body["eventId"] == body["eventId"]
    assert response.body["eventType"] == "suggestionResponse"
    assert response.body["processed"] is True
    assert isinstance(response.body["processingTime"], int)
    conversation = service.tracker.get_conversation("c1")
    assert conversation is not None
    assert conversation.state is ConversationState.ACTIVE
    assert len(conversation.context["userActions"]) == 1
    assert service.events_processed == 1


def test_missing_body(service: CallbackService) -> None:
    response = service.handle_callback(None)

    assert response.status_code == 400
    assert response.body["success"] is False
    assert response.body["error"] == "Missing request body"
    assert response.body["timestamp"] == "2024-01-01T00:00:00.000Z"


def test_invalid_event_never_reaches_tracker(service: CallbackService) -> None:
    body = {
        "eventType": "userMessage",
        "eventId": "e1",
        "timestamp": "2024-01-01T00:00:00.000Z",
        "conversationId": "c1",
        "participantId": "+15551234567",
        "messageId": "m1",
    }

    response = service.handle_callback(body)

    assert response.status_code == 400
    assert response.body["error"] == "Invalid GSMA UP event format"
    assert response.body["errors"] == ["userMessage events must have content"]
    assert service.tracker.get_conversation("c1") is None
    assert service.events_processed == 0


def test_duplicate_event_id_is_rejected(service: CallbackService, factory: EventFactory) -> None:
    body = factory.user_message("hi")
    assert service.handle_callback(body).status_code == 200

    response = service.handle_callback(dict(body))

    assert response.status_code == 400
    assert response.body["errors"] == [f"Duplicate eventId: {body['eventId']}"]
    assert service.tracker.get_conversation("c1").event_count == 1


def test_processing_failure_returns_500(clock: ManualClock, factory: EventFactory) -> None:
    router = EventRouter()

    def explode(event: object) -> None:
        raise RuntimeError("handler blew up")

    router.register(EventType.CHAT_STATE, explode)
    service = CallbackService(router=router, clock=clock)

    response = service.handle_callback(factory.typing(True))

    assert response.status_code == 500
    assert response.body["error"] == "Internal server error"
    assert response.body["message"] == "handler blew up"
    assert service.tracker.get_conversation("c1") is None


def test_status(service: CallbackService, factory: EventFactory, clock: ManualClock) -> None:
    service.handle_callback(factory.user_message("hi"))
    clock.advance(hours=2, minutes=3)

    status = service.status()

    assert status["service"] == "RBM Callback Handler"
    assert status["status"] == "healthy"
    assert status["uptime"] == (2 * 60 + 3) * 60 * 1000
    assert status["uptimeFormatted"] == "2h 3m"
    assert status["startTime"] == "2024-01-01T00:00:00.000Z"
    assert status["eventsProcessed"] == 1
    assert status["conversationCount"] == 1
    assert status["activeConversations"] == 1
    assert status["supportedEventTypes"] == service.router.supported_event_types
    assert [item["conversationId"] for item in status["recentConversations"]] == ["c1"]
    assert status["endpoints"] == {"callback": "POST /api/rbm/callback", "status": "GET /api/rbm/status"}


@pytest.mark.parametrize(
    ("uptime_ms", "expected"),
    [
        (5_000, "5s"),
        (185_000, "3m 5s"),
        (7_380_000, "2h 3m"),
        (93_780_000, "1d 2h 3m"),
    ],
)
def test_format_uptime(uptime_ms: int, expected: str) -> None:
    assert format_uptime(uptime_ms) == expected


def test_validation_challenge(service: CallbackService) -> None:
    echoed = service.validation_challenge({"hub.challenge": "abc123"})
    assert (echoed.status_code, echoed.body, echoed.media_type) == (200, "abc123", "text/plain")

    ready = service.validation_challenge({})
    assert ready.body == {
        "service": "RBM Callback Handler",
        "validation": "ready",
        "timestamp": "2024-01-01T00:00:00.000Z",
    }


def test_forwarding_without_event_loop_is_skipped(clock: ManualClock, factory: EventFactory) -> None:
    requests: list[httpx.Request] = []
    forwarder = EventForwarder(
        enabled=True,
        clock=clock,
        transport=httpx.MockTransport(lambda request: requests.append(request) or httpx.Response(200)),
    )
    forwarder.add_endpoint("https://hooks.example.com/a")
    service = CallbackService(forwarder=forwarder, clock=clock)

    assert service.handle_callback(factory.user_message("hi")).status_code == 200
    assert requests == []


@pytest.mark.asyncio
async def test_forwarding_runs_after_the_response(clock: ManualClock, factory: EventFactory) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(500)

    async def no_sleep(delay: float) -> None:
        return None

    forwarder = EventForwarder(enabled=True, clock=clock, transport=httpx.MockTransport(handler), sleep=no_sleep)
    forwarder.add_endpoint("https://hooks.example.com/a", retries=2)
    service = CallbackService(forwarder=forwarder, clock=clock)
    body = factory.user_message("hi")

    response = service.handle_callback(body)

    assert response.status_code == 200
    assert requests == []

    await service.drain()

    assert len(requests) == 2
    payload = json.loads(requests[0].content)
    assert payload["event"] == body
    assert payload["processingResult"]["type"] == "userMessage"
    assert forwarder.stats.error_count == 1
    assert service.tracker.get_conversation("c1").event_count == 1


def test_blank_optional_fields_are_processed(service: CallbackService, factory: EventFactory) -> None:
    body = factory.suggestion_response("find_store", "Stores", "m0")
    body["responseType"] = ""
    body["context"] = "checkout"

    response = service.handle_callback(body)

    assert response.status_code == 200
    assert response.body["processed"] is True
    conversation = service.tracker.get_conversation("c1")
    assert conversation is not None
    assert conversation.context["userActions"][0]["action"] == "find_store"


def test_wrongly_typed_fields_are_rejected_before_processing(service: CallbackService, factory: EventFactory) -> None:
    body = factory.read_receipt("m1")
    body["readTimestamp"] = 1704067200000

    response = service.handle_callback(body)

    assert response.status_code == 400
    assert response.body["errors"] == ["readReceipt readTimestamp must be a string"]
    assert service.tracker.conversation_count == 0


def test_event_ids_stay_seen_after_their_conversation_is_purged(
    service: CallbackService, factory: EventFactory, clock: ManualClock
) -> None:
    body = factory.user_message("hello")
    assert service.handle_callback(body).status_code == 200

    clock.advance(hours=200)
    assert service.tracker.purge_stale() == 1

    response = service.handle_callback(body)
    assert response.status_code == 400
    assert response.body["errors"] == [f"Duplicate eventId: {body['eventId']}"]
