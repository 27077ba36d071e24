"""Identity defaults for payloads that carry no explicit ids."""

from __future__ import annotations

import re
import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from rcsx.clock import Clock, SystemClock, epoch_millis
from rcsx.messages.detector import is_present

MSISDN_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
DEFAULT_PARTICIPANT_ID = "+15551234567"

_BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def is_msisdn(value: object) -> bool:
    return isinstance(value, str) and MSISDN_PATTERN.match(value) is not None


def random_base36(length: int = 9) -> str:
    return "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class IdSet:
    """Resolved identity fields for one envelope."""

    message_id: str
    conversation_id: str
    participant_id: str

    def as_dict(self) -> dict[str, str]:
        return {
            "messageId": self.message_id,
            "conversationId": self.conversation_id,
            "participantId": self.participant_id,
        }


class IdAssigner:
    """Fill identity fields a payload omits, never touching explicit ones.

    The pipeline only calls this when a payload has no explicit identity field
    at all, so a payload carrying any one of them is never completed for the
    other two.
    """

    def __init__(self, clock: Clock | None = None, *, default_participant_id: str = DEFAULT_PARTICIPANT_ID) -> None:
        self._clock = clock or SystemClock()
        self._default_participant_id = default_participant_id

    def assign_defaults(self, payload: Mapping[str, Any]) -> IdSet:
        millis = epoch_millis(self._clock.now())
        message_id = payload.get("messageId")
        conversation_id = payload.get("conversationId")
        participant_id = payload.get("participantId")
        return IdSet(
            message_id=message_id if is_present(message_id) else f"msg_{millis}_{random_base36()}",
            conversation_id=conversation_id if is_present(conversation_id) else f"conv_{millis}",
            participant_id=participant_id if is_present(participant_id) else self._default_participant_id,
        )
