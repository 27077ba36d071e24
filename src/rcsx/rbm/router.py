"""Dispatch validated events to type-specific handlers."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from rcsx.errors import NoHandlerError
from rcsx.rbm.events import (
    EVENT_MODELS,
    BusinessEvent,
    ChatStateEvent,
    DeliveryReceiptEvent,
    EventType,
    ReadReceiptEvent,
    SuggestionResponseEvent,
    UserMessageEvent,
    parse_event,
)

UNKNOWN_INTENT = "unknown"
FALLBACK_NEXT_STEP = "log_and_continue"


@dataclass(frozen=True)
class ActionResult:
    """Advisory classification of a suggestion postback."""

    action: str
    intent: str
    next_step: str
    description: str

    def as_dict(self) -> dict[str, str]:
        return {
            "action": self.action,
            "intent": self.intent,
            "nextStep": self.next_step,
            "description": self.description,
        }


ACTION_TABLE: dict[str, tuple[str, str, str]] = {
    "view_products": ("product_inquiry", "show_catalog", "User wants to browse products"),
    "place_order": ("purchase_intent", "collect_order_details", "User wants to make a purchase"),
    "contact_support": ("support_request", "route_to_agent", "User needs assistance"),
    "find_store": ("location_inquiry", "request_location", "User wants to find nearby store"),
}


def classify_action(postback_data: str, display_text: str) -> ActionResult:
    known = ACTION_TABLE.get(postback_data)
    if known is None:
        return ActionResult(postback_data, UNKNOWN_INTENT, FALLBACK_NEXT_STEP, f"Generic action: {display_text}")
    intent, next_step, description = known
    return ActionResult(postback_data, intent, next_step, description)


@dataclass(frozen=True)
class ProcessingResult:
    """What a handler processed, echoing the identifying fields of the event."""

    event_type: EventType
    event_id: str
    processed: bool = True
    details: dict[str, Any] = field(default_factory=dict)
    action_result: ActionResult | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.event_type.value, "eventId": self.event_id, "processed": self.processed}
        data.update(self.details)
        if self.action_result is not None:
            data["actionResult"] = self.action_result.as_dict()
        return data


Handler = Callable[[Any], ProcessingResult]


class EventRouter:
    """Route events through a fixed ``eventType`` to handler table.

    Handlers only describe what they saw; conversation state is updated by
    the caller after routing succeeds.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, Handler] = {
            EventType.USER_MESSAGE: self._handle_user_message,
            EventType.CHAT_STATE: self._handle_chat_state,
            EventType.SUGGESTION_RESPONSE: self._handle_suggestion_response,
            EventType.DELIVERY_RECEIPT: self._handle_delivery_receipt,
            EventType.READ_RECEIPT: self._handle_read_receipt,
        }

    @property
    def supported_event_types(self) -> list[str]:
        """Event types that have both a model and a handler, in model table order."""
        return [event_type.value for event_type in EVENT_MODELS if event_type in self._handlers]

    def register(self, event_type: EventType, handler: Handler) -> None:
        self._handlers[event_type] = handler

    def unregister(self, event_type: EventType) -> bool:
        return self._handlers.pop(event_type, None) is not None

    def route(self, event: BusinessEvent | Mapping[str, Any]) -> ProcessingResult:
        """Run the handler for ``event``.

        Raises:
            NoHandlerError: No handler (or schema) exists for the event type.
        """
        if isinstance(event, Mapping):
            event = parse_event(event)

        handler = self._handlers.get(event.event_type)
        if handler is None:
            raise NoHandlerError(event.event_type.value)

        logger.info(
            "rbm.event.route event_id={} event_type={} conversation_id={} participant_id={}",
            event.event_id,
            event.event_type.value,
            event.conversation_id,
            event.participant_id,
        )
        return handler(event)

    @staticmethod
    def _handle_user_message(event: UserMessageEvent) -> ProcessingResult:
        content = event.content
        details: dict[str, Any] = {"messageId": event.message_id, "text": content.text or "[media]"}
        if content.media is not None:
            media = content.media
            logger.info("rbm.user_message.media media_type={} url={}", media.media_type, media.media_url)
            details["media"] = content.media.model_dump(by_alias=True, exclude_none=True)
        if event.reply_context is not None:
            logger.info(
                "rbm.user_message.reply source_message_id={} postback={}",
                event.reply_context.source_message_id,
                event.reply_context.postback_data,
            )
            details["replyContext"] = event.reply_context.model_dump(by_alias=True, exclude_none=True)
        return ProcessingResult(EventType.USER_MESSAGE, event.event_id, details=details)

    @staticmethod
    def _handle_chat_state(event: ChatStateEvent) -> ProcessingResult:
        logger.info("rbm.chat_state state={} conversation_id={}", event.state.value, event.conversation_id)
        return ProcessingResult(EventType.CHAT_STATE, event.event_id, details={"state": event.state.value})

    @staticmethod
    def _handle_suggestion_response(event: SuggestionResponseEvent) -> ProcessingResult:
        action_result = classify_action(event.postback_data, event.display_text)
        logger.info(
            "rbm.suggestion.clicked postback={} display_text={!r} intent={} next_step={}",
            event.postback_data,
            event.display_text,
            action_result.intent,
            action_result.next_step,
        )
        details: dict[str, Any] = {"action": event.postback_data, "displayText": event.display_text}
        if event.action_url:
            details["actionUrl"] = event.action_url
        return ProcessingResult(
            EventType.SUGGESTION_RESPONSE,
            event.event_id,
            details=details,
            action_result=action_result,
        )

    @staticmethod
    def _handle_delivery_receipt(event: DeliveryReceiptEvent) -> ProcessingResult:
        logger.info("rbm.receipt.delivered message_id={} at={}", event.message_id, event.delivered_timestamp)
        return ProcessingResult(EventType.DELIVERY_RECEIPT, event.event_id, details={"messageId": event.message_id})

    @staticmethod
    def _handle_read_receipt(event: ReadReceiptEvent) -> ProcessingResult:
        logger.info("rbm.receipt.read message_id={} at={}", event.message_id, event.read_timestamp)
        return ProcessingResult(EventType.READ_RECEIPT, event.event_id, details={"messageId": event.message_id})
