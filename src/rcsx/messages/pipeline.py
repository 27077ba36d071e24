"""Outbound normalization: validate, assign ids, adapt."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from rcsx.clock import Clock, SystemClock
from rcsx.errors import FieldValidationError
from rcsx.messages.adapter import MessageAdapter
from rcsx.messages.ids import DEFAULT_PARTICIPANT_ID, IdAssigner
from rcsx.messages.models import FormatTag, MessageEnvelope
from rcsx.messages.validator import MessageValidator, ValidationResult


@dataclass(frozen=True)
class NormalizedMessage:
    envelope: MessageEnvelope
    format: FormatTag
    ids_generated: bool


class MessagePipeline:
    """Run a raw chat payload through validation, id assignment and adaptation."""

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        default_participant_id: str = DEFAULT_PARTICIPANT_ID,
    ) -> None:
        clock = clock or SystemClock()
        self.validator = MessageValidator()
        self.assigner = IdAssigner(clock, default_participant_id=default_participant_id)
        self.adapter = MessageAdapter(clock)

    def validate(self, payload: Any) -> ValidationResult:
        return self.validator.validate(payload)

    def normalize(self, payload: Any) -> NormalizedMessage:
        """Return the canonical envelope for ``payload``.

        Raises:
            FieldValidationError: The payload failed validation; ``errors`` lists every violation.
            UnsupportedMessageType: A message has no canonical mapping.
            AdaptationFailed: Conversion failed for any other reason.
        """
        result = self.validator.validate(payload)
        if not result.valid or result.format is None:
            logger.warning("messages.normalize.invalid error_count={} first={}", len(result.errors), result.errors[:1])
            raise FieldValidationError(result.errors)

        defaults = None if result.has_explicit_ids else self.assigner.assign_defaults(payload)
        envelope = self.adapter.to_canonical(payload, defaults)
        logger.info(
            "messages.normalize.ok format={} message_id={} count={} ids_generated={}",
            result.format.value,
            envelope.message_id,
            len(envelope.messages),
            defaults is not None,
        )
        return NormalizedMessage(envelope=envelope, format=result.format, ids_generated=defaults is not None)

    def render(self, payload: Any) -> dict[str, Any]:
        """Normalize ``payload`` and return the shape the chat UI displays."""
        return self.adapter.to_display(self.normalize(payload).envelope)
