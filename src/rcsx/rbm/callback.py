"""Business event callback processing: validate, route, track, forward."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from rcsx.clock import Clock, SystemClock, isoformat_z
from rcsx.logging_utils import event_context
from rcsx.rbm.events import parse_event
from rcsx.rbm.forwarder import EventForwarder
from rcsx.rbm.router import EventRouter, ProcessingResult
from rcsx.rbm.tracker import ConversationTracker
from rcsx.rbm.validator import EventValidator

SERVICE_NAME = "RBM Callback Handler"
ENDPOINTS = {"callback": "POST /api/rbm/callback", "status": "GET /api/rbm/status"}


@dataclass(frozen=True)
class CallbackResponse:
    status_code: int
    body: Any
    media_type: str = "application/json"


def format_uptime(uptime_ms: int) -> str:
    seconds = uptime_ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d {hours % 24}h {minutes % 60}m"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


class CallbackService:
    """The transport-neutral side of ``/api/rbm/callback`` and ``/api/rbm/status``.

    Conversation state is only updated for events that validated and routed.
    Forwarding is scheduled on the running event loop after tracking and is
    never awaited by the response path; use :meth:`drain` to wait for it.
    """

    def __init__(
        self,
        *,
        validator: EventValidator | None = None,
        router: EventRouter | None = None,
        tracker: ConversationTracker | None = None,
        forwarder: EventForwarder | None = None,
        clock: Clock | None = None,
        recent_limit: int = 5,
    ) -> None:
        self._clock = clock or SystemClock()
        self.validator = validator or EventValidator()
        self.router = router or EventRouter()
        self.tracker = tracker or ConversationTracker(self._clock)
        self.forwarder = forwarder or EventForwarder(clock=self._clock)
        self.recent_limit = recent_limit
        self.start_time: datetime = self._clock.now()
        self.events_processed = 0
        # Never pruned: eventIds stay unique for the life of the process, even after a purge.
        self._seen_event_ids: set[str] = set()
        self._pending: set[asyncio.Task[Any]] = set()
        logger.info("rbm.callback.ready endpoint={}", ENDPOINTS["callback"])

    def handle_callback(self, body: Any) -> CallbackResponse:
        started = time.perf_counter()
        if not body:
            return self._error(400, "Missing request body")

        result = self.validator.validate(body)
        if not result.is_valid:
            for error in result.errors:
                logger.warning("rbm.event.rejected error={}", error)
            return self._error(400, "Invalid GSMA UP event format", errors=result.errors)

        event_id = body["eventId"]
        if event_id in self._seen_event_ids:
            logger.warning("rbm.event.duplicate event_id={}", event_id)
            return self._error(400, "Invalid GSMA UP event format", errors=[f"Duplicate eventId: {event_id}"])

        with event_context(event_id):
            logger.info("rbm.event.received event_id={} event_type={}", event_id, body["eventType"])
            try:
                event = parse_event(body)
                processing = self.router.route(event)
                self.tracker.update(event)
            except Exception as exc:
                logger.exception("rbm.event.failed event_id={}", event_id)
                return CallbackResponse(
                    500,
                    {
                        "success": False,
                        "error": "Internal server error",
                        "message": str(exc),
                        "processingTime": self._elapsed_ms(started),
                    },
                )

            self._seen_event_ids.add(event_id)
            self.events_processed += 1
            self._schedule_forward(body, processing)
        return CallbackResponse(
            200,
            {
                "success": True,
                "eventId": event_id,
                "eventType": body["eventType"],
                "processed": processing.processed,
                "processingTime": self._elapsed_ms(started),
            },
        )

    def _schedule_forward(self, body: Mapping[str, Any], processing: ProcessingResult) -> None:
        if not self.forwarder.enabled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("rbm.forward.skipped reason=no_running_loop event_id={}", body.get("eventId"))
            return
        task = loop.create_task(self.forwarder.forward(dict(body), processing.as_dict()))
        self._pending.add(task)
        task.add_done_callback(self._forward_done)

    def _forward_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error("rbm.forward.crashed")

    async def drain(self) -> None:
        """Wait for every scheduled forwarding task to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def status(self) -> dict[str, Any]:
        uptime = int((self._clock.now() - self.start_time).total_seconds() * 1000)
        stats = self.tracker.statistics()
        status = {
            "service": SERVICE_NAME,
            "status": "healthy",
            "uptime": uptime,
            "uptimeFormatted": format_uptime(uptime),
            "startTime": isoformat_z(self.start_time),
            "eventsProcessed": self.events_processed,
            "conversationCount": stats["conversationCount"],
            "activeConversations": stats["activeConversations"],
            "eventTypeCounts": stats["eventTypeCounts"],
            "supportedEventTypes": self.router.supported_event_types,
            "recentConversations": self.tracker.recent_conversations(self.recent_limit),
            "forwarding": self.forwarder.describe(),
            "endpoints": dict(ENDPOINTS),
        }
        logger.info(
            "rbm.status uptime={} events={} conversations={}",
            status["uptimeFormatted"],
            self.events_processed,
            stats["conversationCount"],
        )
        return status

    def validation_challenge(self, query: Mapping[str, str]) -> CallbackResponse:
        challenge = query.get("challenge") or query.get("hub.challenge")
        if challenge:
            logger.info("rbm.webhook.challenge value={}", challenge)
            return CallbackResponse(200, challenge, media_type="text/plain")
        logger.info("rbm.webhook.validation challenge=none")
        return CallbackResponse(
            200,
            {"service": SERVICE_NAME, "validation": "ready", "timestamp": isoformat_z(self._clock.now())},
        )

    def _error(self, status_code: int, message: str, **details: Any) -> CallbackResponse:
        body = {"success": False, "error": message, "timestamp": isoformat_z(self._clock.now()), **details}
        return CallbackResponse(status_code, body)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)
