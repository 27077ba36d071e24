"""GSMA UP business event validation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from rcsx.clock import isoformat_z
from rcsx.messages.ids import is_msisdn
from rcsx.rbm.events import EVENT_MODELS, ChatState, EventType, ResponseType

REQUIRED_FIELDS = ("eventType", "eventId", "timestamp", "conversationId", "participantId")
MAX_EVENT_ID_LENGTH = 256

VALID_EVENT_TYPES = tuple(item.value for item in EVENT_MODELS)
VALID_CHAT_STATES = tuple(item.value for item in ChatState)
VALID_RESPONSE_TYPES = tuple(item.value for item in ResponseType)


@dataclass(frozen=True)
class EventValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def is_iso8601(value: Any) -> bool:
    """Check that ``value`` survives a parse and re-render unchanged (``2024-01-01T00:00:00.000Z``)."""
    if not isinstance(value, str):
        return False
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return False
    if parsed.tzinfo is None:
        return False
    return isoformat_z(parsed) == value


def is_valid_event_id(value: Any) -> bool:
    return isinstance(value, str) and 0 < len(value) < MAX_EVENT_ID_LENGTH


class EventValidator:
    """Validate raw callback bodies before they are routed.

    Checks run in three stages: basic structure, event type specific fields,
    then data formats. A stage only runs when the previous stages found
    nothing, and every error found within a stage is reported. A body that
    passes always parses into its event model.
    """

    def validate(self, event: Any) -> EventValidationResult:
        errors: list[str] = []
        try:
            self._validate_basic_structure(event, errors)
            if not errors:
                self._validate_event_specific(event, errors)
            if not errors:
                self._validate_data_formats(event, errors)
        except Exception as exc:
            logger.exception("rbm.validate.error")
            errors.append(f"Validation error: {exc}")
        return EventValidationResult(is_valid=not errors, errors=errors)

    @staticmethod
    def _validate_basic_structure(event: Any, errors: list[str]) -> None:
        if not isinstance(event, Mapping):
            errors.append("Event must be a valid object")
            return

        for name in REQUIRED_FIELDS:
            value = event.get(name)
            if not value:
                errors.append(f"Missing required field: {name}")
            elif not isinstance(value, str):
                errors.append(f"Field {name} must be a string")

        event_type = event.get("eventType")
        if isinstance(event_type, str) and event_type and event_type not in VALID_EVENT_TYPES:
            errors.append(f"Invalid eventType: {event_type}. Must be one of: {', '.join(VALID_EVENT_TYPES)}")

    def _validate_event_specific(self, event: Mapping[str, Any], errors: list[str]) -> None:
        match EventType(event["eventType"]):
            case EventType.USER_MESSAGE:
                self._validate_user_message(event, errors)
            case EventType.CHAT_STATE:
                self._validate_chat_state(event, errors)
            case EventType.SUGGESTION_RESPONSE:
                self._validate_suggestion_response(event, errors)
            case EventType.DELIVERY_RECEIPT:
                self._validate_receipt(event, errors, "deliveryReceipt", "deliveredTimestamp")
            case EventType.READ_RECEIPT:
                self._validate_receipt(event, errors, "readReceipt", "readTimestamp")

    @staticmethod
    def _validate_user_message(event: Mapping[str, Any], errors: list[str]) -> None:
        _require_string(event, "messageId", "userMessage", errors)

        content = event.get("content")
        if not content:
            errors.append("userMessage events must have content")
        elif not isinstance(content, Mapping) or not (content.get("text") or content.get("media")):
            errors.append("userMessage content must have either text or media")
        else:
            _check_optional_strings(content, ("text",), "userMessage content", errors)
            media = content.get("media")
            if media is not None and not isinstance(media, Mapping):
                errors.append("userMessage content.media must be an object")
            elif media is not None:
                _check_optional_strings(media, ("mediaType", "mediaUrl"), "userMessage content.media", errors)

        reply_context = event.get("replyContext", event.get("_replyContext"))
        if reply_context is not None and not isinstance(reply_context, Mapping):
            errors.append("userMessage replyContext must be an object")
        elif reply_context is not None:
            _check_optional_strings(
                reply_context, ("sourceMessageId", "postbackData", "type"), "userMessage replyContext", errors
            )

    @staticmethod
    def _validate_chat_state(event: Mapping[str, Any], errors: list[str]) -> None:
        state = event.get("state")
        if not state:
            errors.append("chatState events must have state field")
        elif state not in VALID_CHAT_STATES:
            errors.append(f"Invalid chatState: {state}. Must be one of: {', '.join(VALID_CHAT_STATES)}")

    @staticmethod
    def _validate_suggestion_response(event: Mapping[str, Any], errors: list[str]) -> None:
        for name in ("sourceMessageId", "postbackData", "displayText"):
            _require_string(event, name, "suggestionResponse", errors)

        response_type = event.get("responseType")
        if response_type and response_type not in VALID_RESPONSE_TYPES:
            errors.append(
                f"Invalid responseType: {response_type}. Must be one of: {', '.join(VALID_RESPONSE_TYPES)}"
            )
        _check_optional_strings(event, ("actionUrl",), "suggestionResponse", errors)

    @staticmethod
    def _validate_receipt(event: Mapping[str, Any], errors: list[str], label: str, timestamp_field: str) -> None:
        _require_string(event, "messageId", label, errors)
        _require_string(event, timestamp_field, label, errors)

    @staticmethod
    def _validate_data_formats(event: Mapping[str, Any], errors: list[str]) -> None:
        participant_id = event.get("participantId")
        if participant_id and not is_msisdn(participant_id):
            errors.append(
                f"Invalid participantId format: {participant_id}. Should be MSISDN format (e.g., +15551234567)"
            )

        timestamp = event.get("timestamp")
        if timestamp and not is_iso8601(timestamp):
            errors.append(f"Invalid timestamp format: {timestamp}. Should be ISO 8601 format")

        event_id = event.get("eventId")
        if event_id and not is_valid_event_id(event_id):
            errors.append(f"Invalid eventId format: {event_id}. Should be unique identifier")


def _require_string(data: Mapping[str, Any], name: str, label: str, errors: list[str]) -> None:
    value = data.get(name)
    if not value:
        errors.append(f"{label} events must have {name}")
    elif not isinstance(value, str):
        errors.append(f"{label} {name} must be a string")


def _check_optional_strings(data: Mapping[str, Any], names: tuple[str, ...], label: str, errors: list[str]) -> None:
    for name in names:
        value = data.get(name)
        if value is not None and not isinstance(value, str):
            errors.append(f"{label} {name} must be a string")
