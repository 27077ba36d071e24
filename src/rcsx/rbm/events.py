"""Business messaging event models."""

from __future__ import annotations

from abc import ABC
from collections.abc import Mapping
from enum import Enum
from typing import Any, ClassVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from rcsx.errors import SchemaNotFoundError


class EventType(str, Enum):
    USER_MESSAGE = "userMessage"
    CHAT_STATE = "chatState"
    SUGGESTION_RESPONSE = "suggestionResponse"
    DELIVERY_RECEIPT = "deliveryReceipt"
    READ_RECEIPT = "readReceipt"


class ChatState(str, Enum):
    COMPOSING = "composing"
    IDLE = "idle"


class ResponseType(str, Enum):
    ACTION = "action"
    REPLY = "reply"


class EventModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class BusinessEvent(EventModel, ABC):
    """Fields shared by every business messaging event.

    Subclasses set ``event_type`` and are listed in :data:`EVENT_MODELS`.
    """

    event_type: ClassVar[EventType]

    event_id: str = Field(alias="eventId")
    timestamp: str
    conversation_id: str = Field(alias="conversationId")
    participant_id: str = Field(alias="participantId")

    def to_dict(self) -> dict[str, Any]:
        return {"eventType": self.event_type.value, **self.model_dump(mode="json", by_alias=True, exclude_none=True)}


class MediaAttachment(EventModel):
    media_type: str | None = Field(default=None, alias="mediaType")
    media_url: str | None = Field(default=None, alias="mediaUrl")


class MessageContent(EventModel):
    text: str | None = None
    media: MediaAttachment | None = None


class ReplyContext(EventModel):
    source_message_id: str | None = Field(default=None, alias="sourceMessageId")
    postback_data: str | None = Field(default=None, alias="postbackData")
    type: str | None = None


class UserMessageEvent(BusinessEvent):
    event_type = EventType.USER_MESSAGE

    message_id: str = Field(alias="messageId")
    content: MessageContent
    reply_context: ReplyContext | None = Field(
        default=None,
        validation_alias=AliasChoices("replyContext", "_replyContext"),
        serialization_alias="replyContext",
    )


class ChatStateEvent(BusinessEvent):
    event_type = EventType.CHAT_STATE

    state: ChatState


class SuggestionResponseEvent(BusinessEvent):
    event_type = EventType.SUGGESTION_RESPONSE

    source_message_id: str = Field(alias="sourceMessageId")
    postback_data: str = Field(alias="postbackData")
    display_text: str = Field(alias="displayText")
    response_type: ResponseType | None = Field(default=None, alias="responseType")
    action_url: str | None = Field(default=None, alias="actionUrl")
    context: Any = None

    @field_validator("response_type", mode="before")
    @classmethod
    def _blank_response_type(cls, value: Any) -> Any:
        return value or None


class DeliveryReceiptEvent(BusinessEvent):
    event_type = EventType.DELIVERY_RECEIPT

    message_id: str = Field(alias="messageId")
    delivered_timestamp: str = Field(alias="deliveredTimestamp")


class ReadReceiptEvent(BusinessEvent):
    event_type = EventType.READ_RECEIPT

    message_id: str = Field(alias="messageId")
    read_timestamp: str = Field(alias="readTimestamp")


# Keyed and ordered by EventType; validator and router derive their event types from it.
EVENT_MODELS: dict[EventType, type[BusinessEvent]] = {
    model.event_type: model
    for model in (UserMessageEvent, ChatStateEvent, SuggestionResponseEvent, DeliveryReceiptEvent, ReadReceiptEvent)
}


def event_model(event_type: Any) -> type[BusinessEvent]:
    """Return the model for a raw ``eventType`` value.

    Raises:
        SchemaNotFoundError: ``event_type`` is not a known event type.
    """
    try:
        return EVENT_MODELS[EventType(event_type)]
    except (KeyError, TypeError, ValueError):
        raise SchemaNotFoundError(str(event_type)) from None


def parse_event(data: Mapping[str, Any]) -> BusinessEvent:
    """Build the typed event for a raw callback body.

    Raises:
        SchemaNotFoundError: ``eventType`` has no model.
        pydantic.ValidationError: The body does not fit the model.
    """
    return event_model(data.get("eventType")).model_validate(dict(data))
