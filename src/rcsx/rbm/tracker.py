"""Per-conversation and per-participant state built from business events."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from loguru import logger

from rcsx.clock import Clock, SystemClock, isoformat_z
from rcsx.rbm.events import (
    BusinessEvent,
    ChatState,
    ChatStateEvent,
    EventType,
    SuggestionResponseEvent,
    UserMessageEvent,
)
from rcsx.rbm.store import InMemoryStore, KeyedStore

DEFAULT_EXPIRE_AFTER = timedelta(hours=24)
DEFAULT_PURGE_AFTER = timedelta(hours=168)
SUMMARY_TEXT_LIMIT = 50


class ConversationState(str, Enum):
    ACTIVE = "active"
    TYPING = "typing"
    EXPIRED = "expired"


@dataclass(frozen=True)
class EventSummary:
    """One entry in a conversation's event log."""

    event_type: EventType
    event_id: str
    timestamp: str
    summary: dict[str, str]

    def as_dict(self) -> dict[str, Any]:
        return {
            "eventType": self.event_type.value,
            "eventId": self.event_id,
            "timestamp": self.timestamp,
            "summary": dict(self.summary),
        }


@dataclass
class Conversation:
    conversation_id: str
    participant_id: str
    start_time: datetime
    last_activity: datetime
    state: ConversationState = ConversationState.ACTIVE
    event_count: int = 0
    event_log: list[EventSummary] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)

    def overview(self) -> dict[str, Any]:
        return {
            "conversationId": self.conversation_id,
            "participantId": self.participant_id,
            "startTime": isoformat_z(self.start_time),
            "lastActivity": isoformat_z(self.last_activity),
            "eventCount": self.event_count,
            "state": self.state.value,
        }

    def as_dict(self) -> dict[str, Any]:
        return {
            **self.overview(),
            "context": self.context,
            "events": [entry.as_dict() for entry in self.event_log],
        }


@dataclass
class Participant:
    participant_id: str
    first_seen: datetime
    last_seen: datetime
    conversation_ids: list[str] = field(default_factory=list)
    total_events: int = 0

    def add_conversation(self, conversation_id: str) -> None:
        if conversation_id not in self.conversation_ids:
            self.conversation_ids.append(conversation_id)

    def as_dict(self) -> dict[str, Any]:
        return {
            "participantId": self.participant_id,
            "firstSeen": isoformat_z(self.first_seen),
            "lastSeen": isoformat_z(self.last_seen),
            "conversations": list(self.conversation_ids),
            "totalEvents": self.total_events,
        }


def summarize_event(event: BusinessEvent) -> dict[str, str]:
    match event:
        case UserMessageEvent():
            text = event.content.text
            return {"type": "message", "text": text[:SUMMARY_TEXT_LIMIT] if text else "[media]"}
        case SuggestionResponseEvent():
            return {"type": "action", "action": event.postback_data, "text": event.display_text}
        case ChatStateEvent():
            return {"type": "state", "state": event.state.value}
        case _ if event.event_type is EventType.DELIVERY_RECEIPT:
            return {"type": "receipt", "status": "delivered"}
        case _ if event.event_type is EventType.READ_RECEIPT:
            return {"type": "receipt", "status": "read"}
        case _:
            return {"type": event.event_type.value}


class ConversationTracker:
    """Accumulate routed events into conversation and participant records.

    Callers must only pass events that were validated and routed. Staleness
    is measured against the injected clock: an update arriving more than
    ``expire_after`` after the previous one leaves the conversation
    ``expired`` whatever the event type, and expired conversations stay
    expired. :meth:`purge_stale` deletes conversations idle past
    ``purge_after``.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        *,
        conversations: KeyedStore[Conversation] | None = None,
        participants: KeyedStore[Participant] | None = None,
        expire_after: timedelta = DEFAULT_EXPIRE_AFTER,
        purge_after: timedelta = DEFAULT_PURGE_AFTER,
    ) -> None:
        self._clock = clock or SystemClock()
        self._conversations: KeyedStore[Conversation] = conversations or InMemoryStore()
        self._participants: KeyedStore[Participant] = participants or InMemoryStore()
        self.expire_after = expire_after
        self.purge_after = purge_after
        self._state_counts: Counter[ConversationState] = Counter(
            conversation.state for conversation in self._conversations.values()
        )
        self._event_type_counts: Counter[str] = Counter()

    def update(self, event: BusinessEvent) -> Conversation:
        now = self._clock.now()
        conversation = self._conversations.get(event.conversation_id)
        stale = False
        if conversation is None:
            conversation = Conversation(
                conversation_id=event.conversation_id,
                participant_id=event.participant_id,
                start_time=now,
                last_activity=now,
            )
            self._conversations.put(event.conversation_id, conversation)
            self._state_counts[conversation.state] += 1
            logger.info(
                "rbm.conversation.created conversation_id={} participant_id={}",
                event.conversation_id,
                event.participant_id,
            )
        else:
            stale = now - conversation.last_activity > self.expire_after

        self._apply_transition(conversation, event)
        if stale and conversation.state is not ConversationState.EXPIRED:
            self._set_state(conversation, ConversationState.EXPIRED)
            logger.info("rbm.conversation.expired conversation_id={}", conversation.conversation_id)

        conversation.last_activity = now
        conversation.event_log.append(
            EventSummary(event.event_type, event.event_id, event.timestamp, summarize_event(event))
        )
        conversation.event_count += 1
        self._event_type_counts[event.event_type.value] += 1
        self._touch_participant(event.participant_id, event.conversation_id, now)

        logger.info(
            "rbm.conversation.updated conversation_id={} event_count={} state={}",
            conversation.conversation_id,
            conversation.event_count,
            conversation.state.value,
        )
        return conversation

    def _apply_transition(self, conversation: Conversation, event: BusinessEvent) -> None:
        if conversation.state is ConversationState.EXPIRED:
            return
        match event:
            case UserMessageEvent():
                self._set_state(conversation, ConversationState.ACTIVE)
                if event.content.text:
                    conversation.context["lastUserMessage"] = event.content.text
            case SuggestionResponseEvent():
                self._set_state(conversation, ConversationState.ACTIVE)
                conversation.context.setdefault("userActions", []).append(
                    {"action": event.postback_data, "displayText": event.display_text, "timestamp": event.timestamp}
                )
            case ChatStateEvent():
                typing = event.state is ChatState.COMPOSING
                self._set_state(conversation, ConversationState.TYPING if typing else ConversationState.ACTIVE)
            case _:
                pass

    def _set_state(self, conversation: Conversation, state: ConversationState) -> None:
        if conversation.state is state:
            return
        self._state_counts[conversation.state] -= 1
        self._state_counts[state] += 1
        conversation.state = state

    def _touch_participant(self, participant_id: str, conversation_id: str, now: datetime) -> None:
        participant = self._participants.get(participant_id)
        if participant is None:
            participant = Participant(participant_id=participant_id, first_seen=now, last_seen=now)
            self._participants.put(participant_id, participant)
        participant.last_seen = now
        participant.total_events += 1
        participant.add_conversation(conversation_id)

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def get_participant(self, participant_id: str) -> Participant | None:
        return self._participants.get(participant_id)

    def list_participant_conversations(self, participant_id: str) -> list[Conversation]:
        participant = self._participants.get(participant_id)
        if participant is None:
            return []
        conversations = (self._conversations.get(item) for item in participant.conversation_ids)
        return [conversation for conversation in conversations if conversation is not None]

    def conversation_stats(self, conversation_id: str) -> dict[str, Any] | None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        counts = Counter(entry.event_type.value for entry in conversation.event_log)
        duration = conversation.last_activity - conversation.start_time
        return {
            **conversation.overview(),
            "duration": int(duration.total_seconds() * 1000),
            "eventTypeCounts": dict(counts),
        }

    @property
    def conversation_count(self) -> int:
        return self._conversations.count()

    @property
    def active_count(self) -> int:
        """Conversations that have not expired (``active`` or ``typing``)."""
        return self._state_counts[ConversationState.ACTIVE] + self._state_counts[ConversationState.TYPING]

    def statistics(self) -> dict[str, Any]:
        return {
            "conversationCount": self.conversation_count,
            "activeConversations": self.active_count,
            "participantCount": self._participants.count(),
            "stateCounts": {state.value: self._state_counts[state] for state in ConversationState},
            "eventTypeCounts": dict(self._event_type_counts),
        }

    def recent_conversations(self, limit: int = 5) -> list[dict[str, Any]]:
        ordered = sorted(self._conversations.values(), key=lambda item: item.last_activity, reverse=True)
        return [conversation.overview() for conversation in ordered[:limit]]

    def expire_idle(self) -> int:
        """Flag conversations idle past ``expire_after`` without waiting for their next event."""
        now = self._clock.now()
        expired = 0
        for conversation in self._conversations.values():
            if conversation.state is ConversationState.EXPIRED:
                continue
            if now - conversation.last_activity > self.expire_after:
                self._set_state(conversation, ConversationState.EXPIRED)
                logger.info("rbm.conversation.expired conversation_id={}", conversation.conversation_id)
                expired += 1
        return expired

    def purge_stale(self) -> int:
        now = self._clock.now()
        purged = 0
        for conversation in self._conversations.values():
            if now - conversation.last_activity <= self.purge_after:
                continue
            self._conversations.delete(conversation.conversation_id)
            self._state_counts[conversation.state] -= 1
            participant = self._participants.get(conversation.participant_id)
            if participant is not None and conversation.conversation_id in participant.conversation_ids:
                participant.conversation_ids.remove(conversation.conversation_id)
            purged += 1
        if purged:
            logger.info("rbm.conversation.purged count={}", purged)
        return purged

    def sweep(self) -> dict[str, int]:
        purged = self.purge_stale()
        return {"expired": self.expire_idle(), "purged": purged}
