"""Bidirectional conversion between wire payloads and canonical messages."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from loguru import logger
from pydantic import ValidationError

from rcsx.clock import Clock, SystemClock
from rcsx.errors import AdaptationFailed, RcsxError, UnsupportedMessageType
from rcsx.messages.detector import MessageShape, classify_message, detect, is_present, raw_messages, suggestions_of
from rcsx.messages.ids import IdSet
from rcsx.messages.models import (
    Action,
    ActionVariant,
    CanonicalMessage,
    Carousel,
    MediaContent,
    MediaType,
    MessageEnvelope,
    MessageKind,
    RichCard,
)
from rcsx.messages.validator import media_type_of, media_url_of

RICH_CARD_MEDIA_HEIGHT = "MEDIUM"
RICH_CARD_MIME_TYPE = "image/jpeg"
CAROUSEL_CARD_WIDTH = "MEDIUM"
UNKNOWN_KIND_TEXT = "Unknown message type"
UNSUPPORTED_DISPLAY_TEXT = "Unsupported message type"


def _string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _variant(value: Any) -> ActionVariant:
    try:
        return ActionVariant(value)
    except ValueError:
        return ActionVariant.SECONDARY


def adapt_actions(suggestions: Any) -> list[Action]:
    """Map wire suggestions (action-shaped or legacy) to canonical actions."""
    if not isinstance(suggestions, list):
        return []

    actions: list[Action] = []
    for suggestion in suggestions:
        if not isinstance(suggestion, Mapping):
            logger.warning("messages.adapt.skip_suggestion value={!r}", suggestion)
            continue
        action = suggestion.get("action")
        if isinstance(action, Mapping):
            open_url = action.get("openUrlAction")
            actions.append(
                Action(
                    display_label=_string(action.get("text")),
                    postback_data=_string(action.get("postbackData")),
                    variant=ActionVariant.SECONDARY,
                    url=open_url.get("url") if isinstance(open_url, Mapping) else None,
                )
            )
            continue
        actions.append(
            Action(
                display_label=_string(suggestion.get("text") or suggestion.get("label")),
                postback_data=_string(suggestion.get("postbackData") or action),
                variant=_variant(suggestion.get("type")),
                url=suggestion.get("url") if isinstance(suggestion.get("url"), str) else None,
            )
        )
    return actions


def actions_to_wire(actions: list[Action]) -> list[dict[str, Any]]:
    wire: list[dict[str, Any]] = []
    for action in actions:
        body: dict[str, Any] = {"text": action.display_label, "postbackData": action.postback_data}
        if action.url:
            body["openUrlAction"] = {"url": action.url}
        wire.append({"action": body})
    return wire


def _adapt_card(content: Mapping[str, Any]) -> RichCard:
    media = content.get("media")
    if isinstance(media, Mapping):
        image_url = _string(media_url_of(media))
    else:
        image_url = _string(content.get("image") or content.get("imageUrl"))
    return RichCard(
        title=_string(content.get("title")),
        description=_string(content.get("description")),
        image_url=image_url,
        actions=adapt_actions(content.get("suggestions", content.get("actions"))),
    )


def _adapt_cards(cards: Any) -> Carousel:
    if not isinstance(cards, list):
        return Carousel()
    return Carousel(cards=[_adapt_card(card) for card in cards if isinstance(card, Mapping)])


def _adapt_media(media: Mapping[str, Any]) -> MediaContent:
    size = media.get("sizeBytes")
    return MediaContent(
        media_type=media_type_of(media.get("mediaType")) or MediaType.IMAGE,
        url=_string(media_url_of(media)),
        name=media.get("name") if isinstance(media.get("name"), str) else None,
        size_bytes=size if isinstance(size, int) and not isinstance(size, bool) else None,
    )


def _caption(message: Mapping[str, Any]) -> str | None:
    text = message.get("text")
    return text if isinstance(text, str) and text else None


class MessageAdapter:
    """Convert wire payloads to :class:`MessageEnvelope` and back.

    The adapter detects the wire format on its own so it can be used without
    running the validator first. Conversions either succeed completely or
    raise; a partially converted envelope is never returned.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def to_canonical(self, payload: Any, defaults: IdSet | None = None) -> MessageEnvelope:
        try:
            format_tag = detect(payload)
            messages = [self.adapt_message(message) for message in raw_messages(payload, format_tag)]
            fallback = defaults.as_dict() if defaults is not None else {}
            return MessageEnvelope(
                message_id=self._resolve(payload, "messageId", fallback),
                conversation_id=self._resolve(payload, "conversationId", fallback),
                participant_id=self._resolve(payload, "participantId", fallback),
                timestamp=self._clock.now(),
                messages=messages,
            )
        except RcsxError:
            raise
        except (ValidationError, AttributeError, TypeError, KeyError, ValueError) as exc:
            raise AdaptationFailed(str(exc)) from exc

    @staticmethod
    def _resolve(payload: Mapping[str, Any], name: str, fallback: Mapping[str, str]) -> str | None:
        value = payload.get(name)
        return value if is_present(value) else fallback.get(name)

    def adapt_message(self, message: Any) -> CanonicalMessage:
        shape = classify_message(message)
        match shape:
            case MessageShape.TEXT:
                return CanonicalMessage(
                    kind=MessageKind.TEXT,
                    text=message["text"],
                    suggested_actions=adapt_actions(suggestions_of(message)),
                )
            case MessageShape.STANDALONE_CARD:
                content = message["richCard"]["standaloneCard"].get("cardContent") or {}
                return CanonicalMessage(kind=MessageKind.RICH_CARD, rich_card=_adapt_card(content))
            case MessageShape.CAROUSEL_CARD:
                cards = message["richCard"]["carouselCard"].get("cardContents")
                return CanonicalMessage(kind=MessageKind.CAROUSEL, carousel=_adapt_cards(cards))
            case MessageShape.DIRECT_CARD:
                return CanonicalMessage(kind=MessageKind.RICH_CARD, rich_card=_adapt_card(message["richCard"]))
            case MessageShape.CAROUSEL:
                carousel = message["carousel"]
                cards = carousel.get("cards", carousel.get("cardContents"))
                return CanonicalMessage(kind=MessageKind.CAROUSEL, carousel=_adapt_cards(cards))
            case MessageShape.MEDIA:
                return CanonicalMessage(
                    kind=MessageKind.MEDIA,
                    text=_caption(message),
                    media=_adapt_media(message["media"]),
                    suggested_actions=adapt_actions(suggestions_of(message)),
                )
            case MessageShape.TYPED:
                return self._adapt_typed(message)
            case MessageShape.UNKNOWN:
                raise UnsupportedMessageType("Unsupported message type")

    @staticmethod
    def _adapt_typed(message: Mapping[str, Any]) -> CanonicalMessage:
        message_type = message["type"]
        suggested = adapt_actions(suggestions_of(message))
        match message_type:
            case "text":
                return CanonicalMessage(
                    kind=MessageKind.TEXT,
                    text=_string(message.get("text")),
                    suggested_actions=suggested,
                )
            case "richCard":
                card = RichCard(
                    title=_string(message.get("title")),
                    description=_string(message.get("description")),
                    image_url=_string(message.get("image") or message.get("imageUrl")),
                    actions=adapt_actions(message.get("actions", [])),
                )
                return CanonicalMessage(
                    kind=MessageKind.RICH_CARD,
                    text=_caption(message),
                    rich_card=card,
                    suggested_actions=suggested,
                )
            case "media":
                return CanonicalMessage(
                    kind=MessageKind.MEDIA,
                    text=_caption(message),
                    media=_adapt_media(message),
                    suggested_actions=suggested,
                )
            case "carousel":
                return CanonicalMessage(kind=MessageKind.CAROUSEL, carousel=_adapt_cards(message.get("cards")))
            case _:
                raise UnsupportedMessageType(f"Unsupported message type: {message_type}")

    def to_wire(self, envelope: MessageEnvelope) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for name, value in (
            ("messageId", envelope.message_id),
            ("conversationId", envelope.conversation_id),
            ("participantId", envelope.participant_id),
        ):
            if value is not None:
                payload[name] = value
        payload["messages"] = [self.message_to_wire(message) for message in envelope.messages]
        return payload

    @staticmethod
    def message_to_wire(message: CanonicalMessage) -> dict[str, Any]:
        match message.kind:
            case MessageKind.TEXT:
                wire: dict[str, Any] = {"text": message.text}
                if message.suggested_actions:
                    wire["suggestions"] = actions_to_wire(message.suggested_actions)
                return wire
            case MessageKind.RICH_CARD if message.rich_card is not None:
                return {"richCard": {"standaloneCard": {"cardContent": _card_to_wire(message.rich_card)}}}
            case MessageKind.CAROUSEL if message.carousel is not None:
                contents = [_card_to_wire(card) for card in message.carousel.cards]
                return {"richCard": {"carouselCard": {"cardWidth": CAROUSEL_CARD_WIDTH, "cardContents": contents}}}
            case MessageKind.MEDIA if message.media is not None:
                wire = {"media": message.media.to_dict()}
                if message.text:
                    wire["text"] = message.text
                return wire
            case _:
                logger.warning("messages.to_wire.unknown_kind kind={}", message.kind)
                return {"text": message.text or UNKNOWN_KIND_TEXT}

    def to_display(self, envelope: MessageEnvelope) -> dict[str, Any]:
        """Render an envelope in the shape the chat UI consumes."""
        contents = [self.message_to_display(message) for message in envelope.messages]
        if len(contents) == 1:
            return contents[0]
        return {"type": "multiple", "messages": contents}

    @staticmethod
    def message_to_display(message: CanonicalMessage) -> dict[str, Any]:
        match message.kind:
            case MessageKind.TEXT:
                return {
                    "text": message.text,
                    "suggestedActions": [action.to_dict() for action in message.suggested_actions],
                }
            case MessageKind.RICH_CARD if message.rich_card is not None:
                return {"richCard": _card_to_display(message.rich_card)}
            case MessageKind.CAROUSEL if message.carousel is not None:
                return {"carousel": {"cards": [_card_to_display(card) for card in message.carousel.cards]}}
            case MessageKind.MEDIA if message.media is not None:
                display: dict[str, Any] = {"media": message.media.to_dict()}
                if message.text:
                    display["text"] = message.text
                return display
            case _:
                return {"text": message.text or UNSUPPORTED_DISPLAY_TEXT}


def _card_to_wire(card: RichCard) -> dict[str, Any]:
    content: dict[str, Any] = {"title": card.title, "description": card.description}
    if card.image_url:
        content["media"] = {
            "height": RICH_CARD_MEDIA_HEIGHT,
            "contentInfo": {"fileUrl": card.image_url, "mimeType": RICH_CARD_MIME_TYPE},
        }
    content["suggestions"] = actions_to_wire(card.actions)
    return content


def _card_to_display(card: RichCard) -> dict[str, Any]:
    return {
        "title": card.title,
        "description": card.description,
        "image": card.image_url,
        "actions": [action.to_dict() for action in card.actions],
    }
