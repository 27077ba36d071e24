"""Chat message normalization."""

from rcsx.messages.adapter import MessageAdapter
from rcsx.messages.detector import MessageShape, classify_message, detect
from rcsx.messages.ids import IdAssigner, IdSet
from rcsx.messages.models import (
    Action,
    ActionVariant,
    CanonicalMessage,
    Carousel,
    FormatTag,
    MediaContent,
    MediaType,
    MessageEnvelope,
    MessageKind,
    RichCard,
)
from rcsx.messages.pipeline import MessagePipeline, NormalizedMessage
from rcsx.messages.validator import MessageValidator, PresentedError, ValidationResult, present_errors

__all__ = [
    "Action",
    "ActionVariant",
    "CanonicalMessage",
    "Carousel",
    "FormatTag",
    "IdAssigner",
    "IdSet",
    "MediaContent",
    "MediaType",
    "MessageAdapter",
    "MessageEnvelope",
    "MessageKind",
    "MessagePipeline",
    "MessageShape",
    "MessageValidator",
    "NormalizedMessage",
    "PresentedError",
    "RichCard",
    "ValidationResult",
    "classify_message",
    "detect",
    "present_errors",
]
