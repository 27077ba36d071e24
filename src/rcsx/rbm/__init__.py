"""Business messaging events: validation, routing and conversation tracking."""

from rcsx.errors import SchemaNotFoundError
from rcsx.rbm.callback import CallbackResponse, CallbackService
from rcsx.rbm.capture import EventFactory
from rcsx.rbm.events import EVENT_MODELS, BusinessEvent, ChatState, EventType, ResponseType, event_model, parse_event
from rcsx.rbm.forwarder import EventForwarder, ForwardingEndpoint, ForwardingReport, retry_with_backoff
from rcsx.rbm.router import ActionResult, EventRouter, ProcessingResult, classify_action
from rcsx.rbm.runtime import RbmRuntime
from rcsx.rbm.store import InMemoryStore, KeyedStore
from rcsx.rbm.tracker import Conversation, ConversationState, ConversationTracker, EventSummary, Participant
from rcsx.rbm.validator import EventValidationResult, EventValidator

__all__ = [
    "EVENT_MODELS",
    "ActionResult",
    "BusinessEvent",
    "CallbackResponse",
    "CallbackService",
    "ChatState",
    "Conversation",
    "ConversationState",
    "ConversationTracker",
    "EventFactory",
    "EventForwarder",
    "EventRouter",
    "EventSummary",
    "EventType",
    "EventValidationResult",
    "EventValidator",
    "ForwardingEndpoint",
    "ForwardingReport",
    "InMemoryStore",
    "KeyedStore",
    "Participant",
    "ProcessingResult",
    "RbmRuntime",
    "ResponseType",
    "SchemaNotFoundError",
    "classify_action",
    "event_model",
    "parse_event",
    "retry_with_backoff",
]
