"""Messages exchanged between background workers and whoever displays them.

Workers never touch UI state directly. They hand events to an ``EventSink``;
the UI side usually owns a :class:`QueueSink` and drains it from its own
thread (``after()`` polling for Tk based windows).
"""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .logger import get_logger

LOGGER = get_logger("Events")


@dataclass(frozen=True)
class LogEvent:
    text: str
    level: int = logging.INFO


@dataclass(frozen=True)
class ProgressEvent:
    percent: float
    speed: str = "-"
    eta: str = "-"
    current: Optional[int] = None
    total: Optional[int] = None


@dataclass(frozen=True)
class CompletedEvent:
    detail: Optional[str] = None


@dataclass(frozen=True)
class FailedEvent:
    reason: str
    message: str = ""


Event = Union[LogEvent, ProgressEvent, CompletedEvent, FailedEvent]
EventSink = Callable[[Event], None]


def null_sink(event: Event) -> None:
    del event


class QueueSink:
    """Thread-safe sink backed by a :class:`queue.Queue`."""

    def __init__(self, event_queue: "Optional[queue.Queue[Event]]" = None) -> None:
        self.queue: "queue.Queue[Event]" = event_queue if event_queue is not None else queue.Queue()

    def __call__(self, event: Event) -> None:
        self.queue.put(event)

    def drain(self) -> list[Event]:
        """Return every pending event without blocking."""

        events: list[Event] = []
        try:
            while True:
                events.append(self.queue.get_nowait())
        except queue.Empty:
            pass
        return events


class LoggingSink:
    """Write events to a logger."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or LOGGER

    def __call__(self, event: Event) -> None:
        if isinstance(event, LogEvent):
            self._logger.log(event.level, event.text)
        elif isinstance(event, ProgressEvent):
            self._logger.debug(
                "Progress %.1f%% speed=%s eta=%s", event.percent, event.speed, event.eta
            )
        elif isinstance(event, CompletedEvent):
            self._logger.info("Completed %s", event.detail or "")
        elif isinstance(event, FailedEvent):
            self._logger.error("Failed (%s): %s", event.reason, event.message)


def fan_out(*sinks: EventSink) -> EventSink:
    """Return a sink forwarding every event to each of ``sinks`` in order."""

    def _dispatch(event: Event) -> None:
        for sink in sinks:
            sink(event)

    return _dispatch


__all__ = [
    "CompletedEvent",
    "Event",
    "EventSink",
    "FailedEvent",
    "LogEvent",
    "LoggingSink",
    "ProgressEvent",
    "QueueSink",
    "fan_out",
    "null_sink",
]
