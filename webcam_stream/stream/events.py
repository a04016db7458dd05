"""
Stream Events - typed publish/subscribe surface for stream consumers.

Sessions and the registry publish four kinds of events: ``frame``,
``stream-started``, ``stream-stopped`` and ``error``. Consumers (the
WebSocket transport, tests) subscribe per kind. Nothing is queued or
replayed; an event published with no subscribers is dropped.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from webcam_stream.core.logging_utils import get_module_logger


class EventKind(Enum):
    FRAME = "frame"
    STREAM_STARTED = "stream-started"
    STREAM_STOPPED = "stream-stopped"
    ERROR = "error"


class ErrorKind(Enum):
    START_ERROR = "start-error"
    FFMPEG_ERROR = "ffmpeg-error"
    LIST_ERROR = "list-error"


@dataclass(frozen=True)
class FrameEvent:
    """A complete JPEG frame, SOI through EOI inclusive."""

    device_id: str
    data: bytes = field(repr=False)
    kind = EventKind.FRAME

    def encoded(self) -> str:
        """Frame bytes as base64 text, for JSON transports."""
        return base64.b64encode(self.data).decode("ascii")


@dataclass(frozen=True)
class StreamStartedEvent:
    device_id: str
    kind = EventKind.STREAM_STARTED


@dataclass(frozen=True)
class StreamStoppedEvent:
    """Stream ended. ``exit_code`` is 0 for a requested stop."""

    device_id: str
    exit_code: int
    kind = EventKind.STREAM_STOPPED


@dataclass(frozen=True)
class ErrorEvent:
    """A failure report. ``error_kind`` is sent to clients as ``kind``; ``kind`` here is the event tag."""

    error_kind: ErrorKind
    detail: str
    device_id: Optional[str] = None
    kind = EventKind.ERROR


StreamEvent = Union[FrameEvent, StreamStartedEvent, StreamStoppedEvent, ErrorEvent]
EventHandler = Callable[[StreamEvent], None]


class EventChannel:
    """Synchronous fan-out of stream events to per-kind subscribers.

    Handlers run on the publisher's call stack, in the order they were
    subscribed. The subscriber list is copied before each fan-out, so a
    handler may subscribe or unsubscribe (itself or others) while an event
    is being delivered; the change applies from the next publish. A handler
    that raises is logged and the remaining handlers still run.
    """

    def __init__(self, name: str = "") -> None:
        self.logger = get_module_logger("EventChannel").getChild(name) if name else get_module_logger("EventChannel")
        self._subscribers: Dict[EventKind, List[EventHandler]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: EventKind, handler: EventHandler) -> None:
        self._subscribers[kind].append(handler)
        self.logger.debug(
            "Subscribed %s to %s (%d total)",
            getattr(handler, "__name__", repr(handler)),
            kind.value,
            len(self._subscribers[kind]),
        )

    def unsubscribe(self, kind: EventKind, handler: EventHandler) -> bool:
        """Remove one registration of ``handler``; False if it wasn't subscribed."""
        try:
            self._subscribers[kind].remove(handler)
        except ValueError:
            return False
        return True

    def subscriber_count(self, kind: EventKind) -> int:
        return len(self._subscribers[kind])

    def clear(self) -> None:
        for handlers in self._subscribers.values():
            handlers.clear()

    def publish(self, event: StreamEvent) -> None:
        handlers = tuple(self._subscribers[event.kind])
        if not handlers:
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                self.logger.exception(
                    "Handler %s failed for %s event",
                    getattr(handler, "__name__", repr(handler)),
                    event.kind.value,
                )


__all__ = [
    "ErrorEvent",
    "ErrorKind",
    "EventChannel",
    "EventHandler",
    "EventKind",
    "FrameEvent",
    "StreamEvent",
    "StreamStartedEvent",
    "StreamStoppedEvent",
]
