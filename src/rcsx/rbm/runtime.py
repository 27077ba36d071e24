"""Process-wide wiring of the business messaging services."""

from __future__ import annotations

import threading
from contextlib import suppress
from datetime import timedelta
from typing import Any

import httpx
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from rcsx.clock import Clock, SystemClock
from rcsx.config import Settings
from rcsx.errors import ConfigurationError
from rcsx.messages.pipeline import MessagePipeline
from rcsx.rbm.callback import CallbackResponse, CallbackService
from rcsx.rbm.forwarder import EventForwarder
from rcsx.rbm.tracker import ConversationTracker

SWEEP_JOB_ID = "rbm-conversation-sweep"


class RbmRuntime:
    """Own the tracker, callback service and message pipeline for one process.

    While entered, a background scheduler sweeps idle conversations every
    ``purge_interval_minutes``. Sweeps and callbacks share one lock so a
    conversation record is never mutated by both at once.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        clock: Clock | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        scheduler: BaseScheduler | None = None,
    ) -> None:
        if settings.purge_interval_minutes <= 0:
            raise ConfigurationError("purge_interval_minutes must be positive")
        if settings.expire_after_hours > settings.purge_after_hours:
            raise ConfigurationError("expire_after_hours cannot exceed purge_after_hours")

        self.settings = settings
        self.clock = clock or SystemClock()
        self.tracker = ConversationTracker(
            self.clock,
            expire_after=timedelta(hours=settings.expire_after_hours),
            purge_after=timedelta(hours=settings.purge_after_hours),
        )
        self.forwarder = EventForwarder.from_settings(settings, clock=self.clock, transport=transport)
        self.service = CallbackService(
            tracker=self.tracker,
            forwarder=self.forwarder,
            clock=self.clock,
            recent_limit=settings.recent_conversation_limit,
        )
        self.pipeline = MessagePipeline(clock=self.clock, default_participant_id=settings.default_participant_id)
        self.scheduler = scheduler or BackgroundScheduler(daemon=True)
        self._lock = threading.Lock()

    def __enter__(self) -> RbmRuntime:
        self.scheduler.add_job(
            self.sweep,
            IntervalTrigger(minutes=self.settings.purge_interval_minutes),
            id=SWEEP_JOB_ID,
            replace_existing=True,
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info("rbm.runtime.started sweep_interval_minutes={}", self.settings.purge_interval_minutes)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.scheduler.running:
            with suppress(Exception):
                self.scheduler.shutdown()
        logger.info("rbm.runtime.stopped")

    def handle_callback(self, body: Any) -> CallbackResponse:
        with self._lock:
            return self.service.handle_callback(body)

    def status(self) -> dict[str, Any]:
        with self._lock:
            return self.service.status()

    def sweep(self) -> dict[str, int]:
        with self._lock:
            result = self.tracker.sweep()
        logger.info("rbm.runtime.sweep expired={} purged={}", result["expired"], result["purged"])
        return result
