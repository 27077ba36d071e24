"""Wire format detection for inbound chat payloads."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from rcsx.errors import StructuralError, UnknownFormatError
from rcsx.messages.models import FormatTag

SINGLE_FORMAT_KEYS = ("type", "text", "richCard", "carousel", "media")
IDENTITY_FIELDS = ("messageId", "conversationId", "participantId")

NOT_AN_OBJECT = "Message must be a valid JSON object"
ROOT_IS_ARRAY = "Root level cannot be an array - use {messages: [...]} format"


class MessageShape(str, Enum):
    """Shape of one raw message inside a payload, in precedence order."""

    TEXT = "text"
    STANDALONE_CARD = "standaloneCard"
    CAROUSEL_CARD = "carouselCard"
    DIRECT_CARD = "directCard"
    CAROUSEL = "carousel"
    MEDIA = "media"
    TYPED = "typed"
    UNKNOWN = "unknown"


CARD_SHAPES = frozenset({MessageShape.STANDALONE_CARD, MessageShape.CAROUSEL_CARD, MessageShape.DIRECT_CARD})


def check_structure(payload: Any) -> None:
    """Reject payloads that are not JSON objects."""
    if isinstance(payload, list):
        raise StructuralError(ROOT_IS_ARRAY)
    if not isinstance(payload, Mapping):
        raise StructuralError(NOT_AN_OBJECT)


def detect(payload: Any) -> FormatTag:
    """Classify a raw payload into one of the known wire formats.

    Raises:
        StructuralError: The payload is not an object, or is an array.
        UnknownFormatError: The payload matches no known format.
    """
    check_structure(payload)
    messages = payload.get("messages")
    if isinstance(messages, list) and messages:
        return FormatTag.ARRAY
    if any(payload.get(key) is not None for key in SINGLE_FORMAT_KEYS):
        return FormatTag.SINGLE
    raise UnknownFormatError('Unknown message format - must have "messages" array or message "type"')


def classify_message(message: Any) -> MessageShape:
    """Classify one raw message; validator and adapter share this precedence."""
    if not isinstance(message, Mapping):
        return MessageShape.UNKNOWN

    if message.get("text") is not None and message.get("type") in (None, "text"):
        return MessageShape.TEXT

    rich_card = message.get("richCard")
    if isinstance(rich_card, Mapping):
        if rich_card.get("standaloneCard") is not None:
            return MessageShape.STANDALONE_CARD
        if rich_card.get("carouselCard") is not None:
            return MessageShape.CAROUSEL_CARD
        if "title" in rich_card:
            return MessageShape.DIRECT_CARD

    if isinstance(message.get("carousel"), Mapping):
        return MessageShape.CAROUSEL
    if isinstance(message.get("media"), Mapping):
        return MessageShape.MEDIA
    if message.get("type") is not None:
        return MessageShape.TYPED
    return MessageShape.UNKNOWN


def raw_messages(payload: Mapping[str, Any], format_tag: FormatTag) -> list[Any]:
    """Return the list of raw messages carried by ``payload``."""
    match format_tag:
        case FormatTag.ARRAY:
            return list(payload["messages"])
        case FormatTag.SINGLE:
            return [payload]


def is_present(value: Any) -> bool:
    return value is not None and value != ""


def has_explicit_ids(payload: Mapping[str, Any]) -> bool:
    return any(is_present(payload.get(field)) for field in IDENTITY_FIELDS)


def suggestions_of(message: Mapping[str, Any]) -> Any:
    """Return the suggestion list under either of its wire names."""
    if message.get("suggestions") is not None:
        return message["suggestions"]
    return message.get("suggestedActions")
