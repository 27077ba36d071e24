"""Runtime logging helpers."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from logging import Handler
from typing import Literal

import loguru
from loguru import logger
from rich import get_console
from rich.logging import RichHandler

LogProfile = Literal["default", "console"]

NO_EVENT = "-"

_PROFILE_FORMATS: dict[LogProfile, str] = {
    "console": "{extra[event]} | {message}",
    "default": "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {name}:{function}:{line} | {extra[event]} | {message}",
}
_CONFIGURED_PROFILE: LogProfile | None = None
_current_event: ContextVar[str] = ContextVar("rcsx_current_event", default=NO_EVENT)


def current_event() -> str:
    """Id of the business event being processed in this context, or ``-``."""
    return _current_event.get()


@contextmanager
def event_context(event_id: str) -> Iterator[None]:
    token = _current_event.set(event_id)
    try:
        yield
    finally:
        _current_event.reset(token)


def _inject_event(record: loguru.Record) -> None:
    record["extra"].setdefault("event", current_event())


def _build_console_handler() -> Handler:
    return RichHandler(
        console=get_console(),
        show_level=True,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )


def configure_logging(*, profile: LogProfile = "default", level: str = "INFO") -> None:
    """Configure process-level logging once."""
    global _CONFIGURED_PROFILE
    if profile == _CONFIGURED_PROFILE:
        return

    logger.remove()
    logger.configure(patcher=_inject_event)
    sink = _build_console_handler() if profile == "console" else sys.stderr
    logger.add(
        sink,
        level=level.upper(),
        format=_PROFILE_FORMATS[profile],
        backtrace=False,
        diagnose=False,
    )
    _CONFIGURED_PROFILE = profile
