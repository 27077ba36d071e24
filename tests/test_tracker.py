from datetime import timedelta
from typing import Any

import pytest

from rcsx.clock import ManualClock
from rcsx.rbm.capture import EventFactory
from rcsx.rbm.events import parse_event
from rcsx.rbm.store import InMemoryStore
from rcsx.rbm.tracker import Conversation, ConversationState, ConversationTracker


@pytest.fixture
def tracker(clock: ManualClock) -> ConversationTracker:
    return ConversationTracker(clock)


def _track(tracker: ConversationTracker, body: dict[str, Any]) -> Conversation:
    return tracker.update(parse_event(body))


def test_first_event_creates_active_conversation(
    tracker: ConversationTracker, factory: EventFactory, clock: ManualClock
) -> None:
    conversation = _track(tracker, factory.delivery_receipt("m1"))

    assert conversation.conversation_id == "c1"
    assert conversation.participant_id == "+15551234567"
    assert conversation.state is ConversationState.ACTIVE
    assert conversation.start_time == clock.now()
    assert tracker.get_conversation("c1") is conversation


def test_suggestion_response_records_user_action(tracker: ConversationTracker, factory: EventFactory) -> None:
    body = factory.suggestion_response("place_order", "Order", "m0")

    conversation = _track(tracker, body)

    assert conversation.state is ConversationState.ACTIVE
    assert conversation.context["userActions"] == [
        {"action": "place_order", "displayText": "Order", "timestamp": body["timestamp"]}
    ]
    assert conversation.event_log[-1].summary == {"type": "action", "action": "place_order", "text": "Order"}


def test_chat_state_transitions(tracker: ConversationTracker, factory: EventFactory) -> None:
    assert _track(tracker, factory.typing(True)).state is ConversationState.TYPING
    assert _track(tracker, factory.read_receipt("m1")).state is ConversationState.TYPING
    assert _track(tracker, factory.typing(False)).state is ConversationState.ACTIVE
    assert _track(tracker, factory.typing(True)).state is ConversationState.TYPING
    assert _track(tracker, factory.user_message("hi")).state is ConversationState.ACTIVE


def test_user_message_context_and_summaries(tracker: ConversationTracker, factory: EventFactory) -> None:
    long_text = "x" * 80
    _track(tracker, factory.user_message(long_text))
    conversation = _track(tracker, factory.user_message(media_type="image", media_url="https://example.com/a.png"))

    assert conversation.context["lastUserMessage"] == long_text
    assert [entry.summary for entry in conversation.event_log] == [
        {"type": "message", "text": "x" * 50},
        {"type": "message", "text": "[media]"},
    ]


def test_receipt_summaries(tracker: ConversationTracker, factory: EventFactory) -> None:
    for body in factory.simulate_delivery("m1"):
        conversation = _track(tracker, body)

    assert [entry.summary["status"] for entry in conversation.event_log] == ["delivered", "read"]


def test_stale_update_expires_regardless_of_event_type(
    tracker: ConversationTracker, factory: EventFactory, clock: ManualClock
) -> None:
    _track(tracker, factory.user_message("hi"))
    clock.advance(hours=25)

    conversation = _track(tracker, factory.typing(False))

    assert conversation.state is ConversationState.EXPIRED
    assert conversation.last_activity == clock.now()
    assert conversation.event_count == 2


def test_expired_is_not_reactivated(tracker: ConversationTracker, factory: EventFactory, clock: ManualClock) -> None:
    _track(tracker, factory.user_message("hi"))
    clock.advance(hours=25)
    _track(tracker, factory.user_message("still there?"))
    clock.advance(minutes=1)

    conversation = _track(tracker, factory.suggestion_response("place_order", "Order", "m0"))

    assert conversation.state is ConversationState.EXPIRED
    assert "userActions" not in conversation.context
    assert len(conversation.event_log) == 3


def test_exactly_at_window_stays_active(
    tracker: ConversationTracker, factory: EventFactory, clock: ManualClock
) -> None:
    _track(tracker, factory.user_message("hi"))
    clock.advance(hours=24)

    assert _track(tracker, factory.user_message("again")).state is ConversationState.ACTIVE


def test_event_log_and_count_stay_in_step(tracker: ConversationTracker, factory: EventFactory) -> None:
    bodies = [
        factory.typing(True),
        factory.user_message("a"),
        factory.suggestion_response("view_products", "Browse", "m0"),
        factory.delivery_receipt("m1"),
        factory.read_receipt("m1"),
        factory.typing(False),
        factory.user_message("b"),
    ]
    for body in bodies:
        conversation = _track(tracker, body)

    assert len(conversation.event_log) == len(bodies)
    assert conversation.event_count == len(bodies)
    assert [entry.event_id for entry in conversation.event_log] == [body["eventId"] for body in bodies]


def test_participant_tracks_conversations_once(clock: ManualClock, tracker: ConversationTracker) -> None:
    first = EventFactory(clock, conversation_id="c1")
    second = EventFactory(clock, conversation_id="c2")
    _track(tracker, first.user_message("a"))
    clock.advance(minutes=5)
    _track(tracker, first.user_message("b"))
    _track(tracker, second.user_message("c"))

    participant = tracker.get_participant("+15551234567")

    assert participant is not None
    assert participant.conversation_ids == ["c1", "c2"]
    assert participant.total_events == 3
    assert participant.last_seen - participant.first_seen == timedelta(minutes=5)
    assert [item.conversation_id for item in tracker.list_participant_conversations("+15551234567")] == ["c1", "c2"]
    assert tracker.list_participant_conversations("+19999999999") == []


def test_statistics(tracker: ConversationTracker, clock: ManualClock) -> None:
    old = EventFactory(clock, conversation_id="old")
    _track(tracker, old.user_message("a"))
    clock.advance(hours=30)
    fresh = EventFactory(clock, conversation_id="fresh")
    _track(tracker, fresh.typing(True))
    _track(tracker, old.user_message("b"))

    stats = tracker.statistics()

    assert stats["conversationCount"] == 2
    assert stats["activeConversations"] == 1
    assert stats["participantCount"] == 1
    assert stats["stateCounts"] == {"active": 0, "typing": 1, "expired": 1}
    assert stats["eventTypeCounts"] == {"userMessage": 2, "chatState": 1}


def test_conversation_stats(tracker: ConversationTracker, factory: EventFactory, clock: ManualClock) -> None:
    _track(tracker, factory.user_message("a"))
    clock.advance(seconds=90)
    _track(tracker, factory.read_receipt("m1"))

    stats = tracker.conversation_stats("c1")

    assert stats is not None
    assert stats["duration"] == 90_000
    assert stats["eventCount"] == 2
    assert stats["eventTypeCounts"] == {"userMessage": 1, "readReceipt": 1}
    assert stats["startTime"] == "2024-01-01T00:00:00.000Z"
    assert tracker.conversation_stats("missing") is None


def test_recent_conversations(tracker: ConversationTracker, clock: ManualClock) -> None:
    for name in ("a", "b", "c"):
        _track(tracker, EventFactory(clock, conversation_id=name).user_message(name))
        clock.advance(minutes=1)

    assert [item["conversationId"] for item in tracker.recent_conversations(2)] == ["c", "b"]


def test_expire_idle_flags_without_new_events(
    tracker: ConversationTracker, factory: EventFactory, clock: ManualClock
) -> None:
    _track(tracker, factory.user_message("a"))
    clock.advance(hours=25)

    assert tracker.expire_idle() == 1
    assert tracker.expire_idle() == 0
    assert tracker.get_conversation("c1").state is ConversationState.EXPIRED
    assert tracker.active_count == 0


def test_purge_removes_conversations_idle_past_threshold(
    tracker: ConversationTracker, factory: EventFactory, clock: ManualClock
) -> None:
    _track(tracker, factory.user_message("a"))
    clock.advance(hours=167)
    assert tracker.purge_stale() == 0

    clock.advance(hours=2)
    assert tracker.purge_stale() == 1

    assert tracker.get_conversation("c1") is None
    assert tracker.conversation_count == 0
    assert tracker.active_count == 0
    assert tracker.list_participant_conversations("+15551234567") == []


def test_sweep_reports_both_counts(tracker: ConversationTracker, clock: ManualClock) -> None:
    _track(tracker, EventFactory(clock, conversation_id="ancient").user_message("a"))
    clock.advance(hours=100)
    _track(tracker, EventFactory(clock, conversation_id="idle").user_message("b"))
    clock.advance(hours=70)

    assert tracker.sweep() == {"expired": 1, "purged": 1}
    assert tracker.get_conversation("idle").state is ConversationState.EXPIRED


def test_custom_store_and_thresholds(clock: ManualClock, factory: EventFactory) -> None:
    store: InMemoryStore[Conversation] = InMemoryStore()
    tracker = ConversationTracker(clock, conversations=store, expire_after=timedelta(minutes=30))
    _track(tracker, factory.user_message("a"))
    clock.advance(minutes=31)

    assert _track(tracker, factory.user_message("b")).state is ConversationState.EXPIRED
    assert store.count() == 1
    assert store.get("c1") is tracker.get_conversation("c1")
