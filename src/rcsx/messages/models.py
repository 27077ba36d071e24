"""Canonical message model shared by the adapter and the display layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FormatTag(str, Enum):
    """Known top-level wire formats for chat messages."""

    ARRAY = "arrayFormat"
    SINGLE = "singleFormat"


class MessageKind(str, Enum):
    TEXT = "text"
    RICH_CARD = "richCard"
    CAROUSEL = "carousel"
    MEDIA = "media"


class ActionVariant(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    REPLY = "reply"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"


class CanonicalModel(BaseModel):
    """Base for canonical models; fields are exposed under their camelCase wire names."""

    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Action(CanonicalModel):
    display_label: str = Field(alias="displayLabel")
    postback_data: str = Field(alias="postbackData")
    variant: ActionVariant = ActionVariant.SECONDARY
    url: str | None = None


class RichCard(CanonicalModel):
    title: str = ""
    description: str = ""
    image_url: str = Field(default="", alias="imageUrl")
    actions: list[Action] = Field(default_factory=list)


class Carousel(CanonicalModel):
    cards: list[RichCard] = Field(default_factory=list)


class MediaContent(CanonicalModel):
    media_type: MediaType = Field(default=MediaType.IMAGE, alias="mediaType")
    url: str = ""
    name: str | None = None
    size_bytes: int | None = Field(default=None, alias="sizeBytes")


class CanonicalMessage(CanonicalModel):
    """One normalized chat unit."""

    kind: MessageKind
    text: str | None = None
    rich_card: RichCard | None = Field(default=None, alias="richCard")
    carousel: Carousel | None = None
    media: MediaContent | None = None
    suggested_actions: list[Action] = Field(default_factory=list, alias="suggestedActions")

    @model_validator(mode="after")
    def _check_payload_matches_kind(self) -> CanonicalMessage:
        bodies = {
            MessageKind.RICH_CARD: self.rich_card,
            MessageKind.CAROUSEL: self.carousel,
            MessageKind.MEDIA: self.media,
        }
        present = [kind for kind, body in bodies.items() if body is not None]
        if len(present) > 1:
            raise ValueError("only one of richCard, carousel or media may be set")
        if self.kind is MessageKind.TEXT:
            if present:
                raise ValueError("text messages cannot carry a richCard, carousel or media body")
            if not self.text:
                raise ValueError("text messages must have non-empty text")
        elif present != [self.kind]:
            raise ValueError(f"{self.kind.value} messages must carry a {self.kind.value} body")
        return self


class MessageEnvelope(CanonicalModel):
    """Identity header wrapping one or more canonical messages.

    Identity fields stay ``None`` only when a payload named some but not all of
    them, since defaults are assigned all-or-nothing.
    """

    message_id: str | None = Field(default=None, alias="messageId", min_length=1)
    conversation_id: str | None = Field(default=None, alias="conversationId", min_length=1)
    participant_id: str | None = Field(default=None, alias="participantId", min_length=1)
    timestamp: datetime
    messages: list[CanonicalMessage] = Field(default_factory=list)
