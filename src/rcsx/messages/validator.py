"""Schema validation for chat message payloads.

Validation never raises. Every violation found is collected so a caller can
report all of them at once; messages in the array form are labelled with their
1-based position (``Message 2: ...``).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from loguru import logger

from rcsx.errors import StructuralError, UnknownFormatError
from rcsx.messages.detector import (
    CARD_SHAPES,
    IDENTITY_FIELDS,
    MessageShape,
    check_structure,
    classify_message,
    detect,
    has_explicit_ids,
    suggestions_of,
)
from rcsx.messages.ids import is_msisdn
from rcsx.messages.models import FormatTag, MediaType

ErrorCategory = Literal["format", "structure", "value", "general"]

TYPED_MESSAGE_TYPES = ("text", "richCard", "media")

_CATEGORY_KEYWORDS: tuple[tuple[str, ErrorCategory], ...] = (
    ("must be", "format"),
    ("must have", "format"),
    ("cannot be", "structure"),
    ("Invalid", "value"),
)

_HUMANIZED: dict[str, str] = {
    "Messages field must be an array": 'The "messages" field should contain a list of messages',
    "Messages array cannot be empty": "You need to include at least one message",
    "Action must have text field": "Button actions need display text",
    "Action must have postbackData field": "Button actions need postback data for processing",
    "Text field must be a non-empty string": "Text messages need some text to show",
    "Card must have a title string": "Rich cards need a title",
    "Must have text, richCard, or type field": "Each message needs text, a rich card, or a type",
}


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    format: FormatTag | None = None
    has_explicit_ids: bool = False


@dataclass(frozen=True)
class PresentedError:
    """A validation error prepared for display."""

    type: ErrorCategory
    message: str
    technical: str

    def as_dict(self) -> dict[str, str]:
        return {"type": self.type, "message": self.message, "technical": self.technical}


def media_type_of(value: Any) -> MediaType | None:
    """Map a wire media type (``image`` or a MIME type like ``image/png``) to :class:`MediaType`."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return MediaType(value)
    except ValueError:
        pass
    if "/" not in value:
        return None
    major = value.split("/", 1)[0]
    if major == "image":
        return MediaType.IMAGE
    if major == "video":
        return MediaType.VIDEO
    return MediaType.DOCUMENT


def media_url_of(media: Mapping[str, Any]) -> Any:
    content_info = media.get("contentInfo")
    if isinstance(content_info, Mapping) and content_info.get("fileUrl"):
        return content_info["fileUrl"]
    return media.get("url") or media.get("fileUrl") or media.get("mediaUrl")


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


class MessageValidator:
    """Validate chat payloads against the rules of their detected format."""

    def validate(self, payload: Any) -> ValidationResult:
        try:
            return self._validate(payload)
        except Exception as exc:
            logger.exception("messages.validate.error")
            return ValidationResult(valid=False, errors=[f"Validation error: {exc}"])

    def _validate(self, payload: Any) -> ValidationResult:
        try:
            check_structure(payload)
        except StructuralError as exc:
            return ValidationResult(valid=False, errors=[str(exc)])

        errors: list[str] = []
        format_tag = self._validate_format(payload, errors)
        self._validate_id_fields(payload, errors)
        return ValidationResult(
            valid=not errors,
            errors=errors,
            format=format_tag,
            has_explicit_ids=has_explicit_ids(payload),
        )

    def _validate_format(self, payload: Mapping[str, Any], errors: list[str]) -> FormatTag | None:
        # An empty or malformed messages field still reads as the array form.
        if payload.get("messages") is not None:
            self._validate_array(payload["messages"], errors)
            return FormatTag.ARRAY
        try:
            format_tag = detect(payload)
        except UnknownFormatError as exc:
            errors.append(str(exc))
            return None
        self._validate_message(payload, errors, "Message")
        return format_tag

    def _validate_array(self, messages: Any, errors: list[str]) -> None:
        if not isinstance(messages, list):
            errors.append("Messages field must be an array")
            return
        if not messages:
            errors.append("Messages array cannot be empty")
            return
        for index, message in enumerate(messages, start=1):
            self._validate_message(message, errors, f"Message {index}")

    def _validate_message(self, message: Any, errors: list[str], context: str) -> None:
        if not isinstance(message, Mapping):
            errors.append(f"{context}: Message must be a JSON object")
            return

        shape = classify_message(message)
        if message.get("richCard") is not None and shape is not MessageShape.TEXT and shape not in CARD_SHAPES:
            errors.append(f"{context}: Rich card must have standaloneCard structure")
            if shape is MessageShape.UNKNOWN:
                return

        match shape:
            case MessageShape.TEXT:
                self._validate_text(message, errors, context)
            case MessageShape.STANDALONE_CARD:
                self._validate_standalone_card(message["richCard"]["standaloneCard"], errors, context)
            case MessageShape.CAROUSEL_CARD:
                self._validate_carousel_card(message["richCard"]["carouselCard"], errors, context)
            case MessageShape.DIRECT_CARD:
                self._validate_card_content(message["richCard"], errors, context)
            case MessageShape.CAROUSEL:
                self._validate_carousel(message["carousel"], errors, context)
            case MessageShape.MEDIA:
                self._validate_media(message["media"], errors, context)
            case MessageShape.TYPED:
                self._validate_typed(message, errors, context)
            case MessageShape.UNKNOWN:
                errors.append(f"{context}: Must have text, richCard, or type field")

    def _validate_text(self, message: Mapping[str, Any], errors: list[str], context: str) -> None:
        if not _non_empty_string(message.get("text")):
            errors.append(f"{context}: Text field must be a non-empty string")
        suggestions = suggestions_of(message)
        if suggestions is not None:
            self._validate_suggestions(suggestions, errors, context)

    def _validate_standalone_card(self, card: Any, errors: list[str], context: str) -> None:
        content = card.get("cardContent") if isinstance(card, Mapping) else None
        if not isinstance(content, Mapping):
            errors.append(f"{context}: Standalone card must have cardContent")
            return
        self._validate_card_content(content, errors, context)

    def _validate_carousel_card(self, card: Any, errors: list[str], context: str) -> None:
        contents = card.get("cardContents") if isinstance(card, Mapping) else None
        if not isinstance(contents, list) or not contents:
            errors.append(f"{context}: Carousel card must have a non-empty cardContents array")
            return
        for index, content in enumerate(contents, start=1):
            if not isinstance(content, Mapping):
                errors.append(f"{context} card {index}: Card must be a JSON object")
                continue
            self._validate_card_content(content, errors, f"{context} card {index}")

    def _validate_carousel(self, carousel: Mapping[str, Any], errors: list[str], context: str) -> None:
        cards = carousel.get("cards", carousel.get("cardContents"))
        if not isinstance(cards, list) or not cards:
            errors.append(f"{context}: Carousel must have a non-empty cards array")
            return
        for index, card in enumerate(cards, start=1):
            if not isinstance(card, Mapping):
                errors.append(f"{context} card {index}: Card must be a JSON object")
                continue
            self._validate_card_content(card, errors, f"{context} card {index}")

    def _validate_card_content(self, content: Mapping[str, Any], errors: list[str], context: str) -> None:
        if not _non_empty_string(content.get("title")):
            errors.append(f"{context}: Card must have a title string")
        suggestions = content.get("suggestions", content.get("actions"))
        if suggestions is not None:
            self._validate_suggestions(suggestions, errors, context)

    def _validate_media(self, media: Mapping[str, Any], errors: list[str], context: str) -> None:
        if not _non_empty_string(media_url_of(media)):
            errors.append(f"{context}: Media must have a url string")
        raw_type = media.get("mediaType")
        if raw_type is not None and media_type_of(raw_type) is None:
            allowed = ", ".join(item.value for item in MediaType)
            errors.append(f'{context}: Invalid mediaType "{raw_type}" - must be: {allowed}')
        size = media.get("sizeBytes")
        if size is not None and (not isinstance(size, int) or isinstance(size, bool) or size < 0):
            errors.append(f"{context}: Media sizeBytes must be a non-negative integer")

    def _validate_typed(self, message: Mapping[str, Any], errors: list[str], context: str) -> None:
        message_type = message.get("type")
        if message_type not in TYPED_MESSAGE_TYPES:
            errors.append(f'{context}: Invalid type "{message_type}" - must be: {", ".join(TYPED_MESSAGE_TYPES)}')
        if message_type == "text" and not _non_empty_string(message.get("text")):
            errors.append(f"{context}: Text type messages must have text field")
        suggestions = suggestions_of(message)
        if suggestions is not None:
            self._validate_suggestions(suggestions, errors, context)

    def _validate_suggestions(self, suggestions: Any, errors: list[str], context: str) -> None:
        if not isinstance(suggestions, list):
            errors.append(f"{context}: Suggestions must be an array")
            return
        for index, suggestion in enumerate(suggestions, start=1):
            self._validate_suggestion(suggestion, errors, f"{context} suggestion {index}")

    @staticmethod
    def _validate_suggestion(suggestion: Any, errors: list[str], context: str) -> None:
        if not isinstance(suggestion, Mapping):
            errors.append(f"{context}: Suggestion must be a JSON object")
            return

        action = suggestion.get("action")
        if isinstance(action, Mapping):
            label, postback = action.get("text"), action.get("postbackData")
        elif action is None and not any(key in suggestion for key in ("text", "label", "postbackData")):
            errors.append(f"{context}: Must have action field")
            return
        else:
            label = suggestion.get("text") or suggestion.get("label")
            postback = suggestion.get("postbackData") or action

        if not _non_empty_string(label):
            errors.append(f"{context}: Action must have text field")
        if not _non_empty_string(postback):
            errors.append(f"{context}: Action must have postbackData field")

    @staticmethod
    def _validate_id_fields(payload: Mapping[str, Any], errors: list[str]) -> None:
        for name in IDENTITY_FIELDS:
            value = payload.get(name)
            if value is not None and not isinstance(value, str):
                errors.append(f"{name} must be a string")
        participant_id = payload.get("participantId")
        if isinstance(participant_id, str) and participant_id and not is_msisdn(participant_id):
            errors.append(
                f"Invalid participantId format: {participant_id}. Should be MSISDN format (e.g., +15551234567)"
            )


def categorize_error(error: str) -> ErrorCategory:
    for keyword, category in _CATEGORY_KEYWORDS:
        if keyword in error:
            return category
    return "general"


def humanize_error(error: str) -> str:
    """Reword a known error for end users, keeping any ``Message N:`` prefix."""
    for technical, friendly in _HUMANIZED.items():
        if error == technical:
            return friendly
        if error.endswith(f": {technical}"):
            return error[: -len(technical)] + friendly
    return error


def present_errors(result: ValidationResult) -> list[PresentedError]:
    if result.valid:
        return []
    return [PresentedError(categorize_error(error), humanize_error(error), error) for error in result.errors]
