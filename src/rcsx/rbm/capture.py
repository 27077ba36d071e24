"""Build well-formed business events on behalf of a simulated user."""

from __future__ import annotations

from itertools import count
from typing import Any

from rcsx.clock import Clock, SystemClock, epoch_millis, isoformat_z
from rcsx.messages.ids import DEFAULT_PARTICIPANT_ID
from rcsx.rbm.events import ChatState, EventType, ResponseType

SUGGESTED_REPLY_TYPE = "suggested_reply"


class EventFactory:
    """Emit callback bodies for one conversation, numbering ids per factory.

    Event ids look like ``evt_<epoch ms>_<n>`` and message ids like
    ``msg_<epoch ms>_<n>``; both counters start at 1.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        *,
        conversation_id: str | None = None,
        participant_id: str = DEFAULT_PARTICIPANT_ID,
    ) -> None:
        self._clock = clock or SystemClock()
        self._event_numbers = count(1)
        self._message_numbers = count(1)
        self.conversation_id = conversation_id or f"conv_emulator_{self._millis()}"
        self.participant_id = participant_id

    def _millis(self) -> int:
        return epoch_millis(self._clock.now())

    def next_event_id(self) -> str:
        return f"evt_{self._millis()}_{next(self._event_numbers)}"

    def next_message_id(self) -> str:
        return f"msg_{self._millis()}_{next(self._message_numbers)}"

    def base_event(self, event_type: EventType, **fields: Any) -> dict[str, Any]:
        return {
            "eventType": event_type.value,
            "eventId": self.next_event_id(),
            "timestamp": isoformat_z(self._clock.now()),
            "conversationId": self.conversation_id,
            "participantId": self.participant_id,
            **fields,
        }

    def typing(self, started: bool) -> dict[str, Any]:
        state = ChatState.COMPOSING if started else ChatState.IDLE
        return self.base_event(EventType.CHAT_STATE, state=state.value)

    def user_message(
        self,
        text: str | None = None,
        *,
        media_type: str | None = None,
        media_url: str | None = None,
    ) -> dict[str, Any]:
        if media_type:
            content: dict[str, Any] = {"media": {"mediaType": media_type, "mediaUrl": media_url}, "text": text or ""}
        else:
            content = {"text": text}
        return self.base_event(EventType.USER_MESSAGE, messageId=self.next_message_id(), content=content)

    def suggested_reply(self, reply_text: str, postback_data: str, source_message_id: str) -> dict[str, Any]:
        return self.base_event(
            EventType.USER_MESSAGE,
            messageId=self.next_message_id(),
            content={"text": reply_text},
            replyContext={
                "sourceMessageId": source_message_id,
                "postbackData": postback_data,
                "type": SUGGESTED_REPLY_TYPE,
            },
        )

    def suggestion_response(
        self,
        postback_data: str,
        display_text: str,
        source_message_id: str,
        *,
        response_type: ResponseType = ResponseType.ACTION,
        action_url: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        event = self.base_event(
            EventType.SUGGESTION_RESPONSE,
            sourceMessageId=source_message_id,
            responseType=response_type.value,
            postbackData=postback_data,
            displayText=display_text,
            context=context or {},
        )
        if action_url:
            event["actionUrl"] = action_url
        return event

    def delivery_receipt(self, message_id: str) -> dict[str, Any]:
        return self.base_event(
            EventType.DELIVERY_RECEIPT,
            messageId=message_id,
            deliveredTimestamp=isoformat_z(self._clock.now()),
        )

    def read_receipt(self, message_id: str) -> dict[str, Any]:
        return self.base_event(
            EventType.READ_RECEIPT,
            messageId=message_id,
            readTimestamp=isoformat_z(self._clock.now()),
        )

    def simulate_delivery(self, message_id: str) -> list[dict[str, Any]]:
        """Receipts a carrier would report for ``message_id``: delivered, then read."""
        return [self.delivery_receipt(message_id), self.read_receipt(message_id)]
