"""Best-effort forwarding of processed events to subscriber endpoints."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from rcsx.clock import Clock, SystemClock, isoformat_z
from rcsx.config import Settings
from rcsx.errors import ForwardingError

FORWARD_SOURCE = "rcs-emulator"
USER_AGENT = "RCS-Emulator-Forwarder/1.0"
DEFAULT_RETRIES = 3
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_BACKOFF_SECONDS = 1.0

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, base: float) -> float:
    """Delay after failed ``attempt`` (1-based): ``base``, ``2*base``, ``4*base``..."""
    return base * 2 ** (attempt - 1)


async def retry_with_backoff[T](
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    timeout: float,
    backoff: float,
    sleep: Sleep = asyncio.sleep,
    label: str = "operation",
) -> tuple[T, int]:
    """Run ``operation`` until it succeeds or ``attempts`` are used up.

    Each attempt is abandoned after ``timeout`` seconds and counted as a
    failure. Returns the result with the 1-based attempt that produced it and
    re-raises the last failure once every attempt has failed.
    """
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(operation(), timeout=timeout), attempt
        except TimeoutError:
            last_error = TimeoutError(f"Request timeout after {int(timeout * 1000)}ms")
        except Exception as exc:
            last_error = exc
        logger.warning("rbm.forward.attempt_failed target={} attempt={} error={}", label, attempt, last_error)
        if attempt < attempts:
            await sleep(backoff_delay(attempt, backoff))
    if last_error is None:
        raise ValueError("attempts must be at least 1")
    raise last_error


@dataclass
class ForwardingEndpoint:
    url: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    retries: int = DEFAULT_RETRIES
    enabled: bool = True

    def describe(self) -> dict[str, Any]:
        return {"url": self.url, "method": self.method, "enabled": self.enabled}


@dataclass(frozen=True)
class EndpointOutcome:
    endpoint: str
    success: bool
    status: int | None = None
    attempt: int | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "status": "fulfilled" if self.success else "rejected",
            "httpStatus": self.status,
            "attempt": self.attempt,
            "error": self.error,
        }


@dataclass(frozen=True)
class ForwardingReport:
    forwarded: bool
    reason: str | None = None
    outcomes: list[EndpointOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def error_count(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)

    def as_dict(self) -> dict[str, Any]:
        if not self.forwarded:
            return {"forwarded": False, "reason": self.reason}
        return {
            "forwarded": True,
            "endpointCount": len(self.outcomes),
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "results": [outcome.as_dict() for outcome in self.outcomes],
        }


@dataclass
class ForwardingStats:
    total_forwarded: int = 0
    success_count: int = 0
    error_count: int = 0
    last_forward_time: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "totalForwarded": self.total_forwarded,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "lastForwardTime": self.last_forward_time,
        }


class EventForwarder:
    """Send ``{event, processingResult, timestamp, source}`` to every enabled endpoint.

    Endpoints are contacted concurrently and accounted independently; one
    endpoint failing never changes another's outcome.
    """

    def __init__(
        self,
        *,
        enabled: bool = False,
        backoff: float = DEFAULT_BACKOFF_SECONDS,
        clock: Clock | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.enabled = enabled
        self.backoff = backoff
        self.endpoints: list[ForwardingEndpoint] = []
        self.stats = ForwardingStats()
        self._clock = clock or SystemClock()
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> EventForwarder:
        forwarder = cls(enabled=settings.forward_enabled, backoff=settings.forward_backoff_seconds, **kwargs)
        for url in settings.forward_endpoints:
            forwarder.add_endpoint(
                url,
                timeout=settings.forward_timeout_seconds,
                retries=settings.forward_retries,
            )
        return forwarder

    def add_endpoint(self, url: str, **options: Any) -> ForwardingEndpoint:
        endpoint = ForwardingEndpoint(url=url, **options)
        self.endpoints.append(endpoint)
        logger.info("rbm.forward.endpoint_added url={}", url)
        return endpoint

    def remove_endpoint(self, url: str) -> bool:
        for index, endpoint in enumerate(self.endpoints):
            if endpoint.url == url:
                del self.endpoints[index]
                logger.info("rbm.forward.endpoint_removed url={}", url)
                return True
        return False

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        logger.info("rbm.forward.toggled enabled={}", enabled)

    def describe(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "endpointCount": len(self.endpoints),
            "endpoints": [endpoint.describe() for endpoint in self.endpoints],
            "stats": self.stats.as_dict(),
        }

    def reset_stats(self) -> None:
        self.stats = ForwardingStats()
        logger.info("rbm.forward.stats_reset")

    async def forward(
        self,
        event: Mapping[str, Any],
        processing_result: Mapping[str, Any] | None = None,
    ) -> ForwardingReport:
        targets = [endpoint for endpoint in self.endpoints if endpoint.enabled]
        if not self.enabled or not targets:
            return ForwardingReport(forwarded=False, reason="Forwarding disabled or no endpoints")

        payload = {
            "event": dict(event),
            "processingResult": dict(processing_result) if processing_result is not None else None,
            "timestamp": isoformat_z(self._clock.now()),
            "source": FORWARD_SOURCE,
        }
        async with httpx.AsyncClient(transport=self._transport) as client:
            results = await asyncio.gather(
                *(self._forward_to(client, endpoint, payload) for endpoint in targets),
                return_exceptions=True,
            )

        outcomes: list[EndpointOutcome] = []
        for endpoint, result in zip(targets, results, strict=True):
            if isinstance(result, EndpointOutcome):
                outcomes.append(result)
            else:
                outcomes.append(EndpointOutcome(endpoint=endpoint.url, success=False, error=str(result)))

        report = ForwardingReport(forwarded=True, outcomes=outcomes)
        self.stats.total_forwarded += 1
        self.stats.success_count += report.success_count
        self.stats.error_count += report.error_count
        self.stats.last_forward_time = isoformat_z(self._clock.now())
        logger.info(
            "rbm.forward.done event_id={} event_type={} success={} errors={}",
            event.get("eventId"),
            event.get("eventType"),
            report.success_count,
            report.error_count,
        )
        return report

    async def _forward_to(
        self,
        client: httpx.AsyncClient,
        endpoint: ForwardingEndpoint,
        payload: dict[str, Any],
    ) -> EndpointOutcome:
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT, **endpoint.headers}

        async def send() -> httpx.Response:
            logger.debug("rbm.forward.attempt url={}", endpoint.url)
            response = await client.request(endpoint.method, endpoint.url, json=payload, headers=headers)
            if not response.is_success:
                raise httpx.HTTPStatusError(
                    f"HTTP {response.status_code}: {response.reason_phrase}",
                    request=response.request,
                    response=response,
                )
            return response

        try:
            response, attempt = await retry_with_backoff(
                send,
                attempts=endpoint.retries,
                timeout=endpoint.timeout,
                backoff=self.backoff,
                sleep=self._sleep,
                label=endpoint.url,
            )
        except Exception as exc:
            error = ForwardingError(endpoint.url, endpoint.retries, str(exc))
            logger.error("rbm.forward.failed url={} error={}", endpoint.url, error)
            raise error from exc

        logger.info("rbm.forward.success url={} status={} attempt={}", endpoint.url, response.status_code, attempt)
        return EndpointOutcome(endpoint=endpoint.url, success=True, status=response.status_code, attempt=attempt)
