"""JSON message vocabulary spoken over the webcam WebSocket."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from webcam_stream.stream.events import (
    ErrorEvent,
    FrameEvent,
    StreamEvent,
    StreamStartedEvent,
    StreamStoppedEvent,
)

# Client -> server
MSG_LIST = "webcam-list"
MSG_START = "webcam-start"
MSG_STOP = "webcam-stop"
MSG_RESOLUTION = "webcam-resolution"

# Server -> client
MSG_STATUS = "status"
MSG_DEVICES = "webcam-devices"
MSG_FRAME = "webcam-frame"
MSG_STARTED = "webcam-started"
MSG_STOPPED = "webcam-stopped"
MSG_WEBCAM_ERROR = "webcam-error"
MSG_ERROR = "error"


class ProtocolError(ValueError):
    """A client message that can't be acted on."""


def parse_message(raw: str) -> Dict[str, Any]:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"Failed to parse message: {exc.msg}") from exc
    if not isinstance(message, dict):
        raise ProtocolError("Message must be a JSON object")
    return message


def device_id_of(message: Dict[str, Any]) -> Optional[str]:
    device_id = message.get("deviceId")
    if isinstance(device_id, str) and device_id:
        return device_id
    return None


def frame_rate_of(message: Dict[str, Any]) -> Optional[int]:
    """``frameRate`` if it is a whole number, otherwise None (ignored)."""
    value = message.get("frameRate")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    return int(value)


def status_message(content: str) -> Dict[str, Any]:
    return {"type": MSG_STATUS, "content": content}


def error_message(content: str) -> Dict[str, Any]:
    return {"type": MSG_ERROR, "content": content}


def event_to_message(event: StreamEvent) -> Dict[str, Any]:
    if isinstance(event, FrameEvent):
        return {"type": MSG_FRAME, "deviceId": event.device_id, "data": event.encoded()}
    if isinstance(event, StreamStartedEvent):
        return {"type": MSG_STARTED, "deviceId": event.device_id}
    if isinstance(event, StreamStoppedEvent):
        return {"type": MSG_STOPPED, "deviceId": event.device_id, "code": event.exit_code}
    if isinstance(event, ErrorEvent):
        return {
            "type": MSG_WEBCAM_ERROR,
            "deviceId": event.device_id,
            "error": event.detail,
            "kind": event.error_kind.value,
        }
    raise TypeError(f"Unsupported event: {event!r}")


__all__ = [
    "MSG_DEVICES",
    "MSG_ERROR",
    "MSG_FRAME",
    "MSG_LIST",
    "MSG_RESOLUTION",
    "MSG_START",
    "MSG_STARTED",
    "MSG_STATUS",
    "MSG_STOP",
    "MSG_STOPPED",
    "MSG_WEBCAM_ERROR",
    "ProtocolError",
    "device_id_of",
    "error_message",
    "event_to_message",
    "frame_rate_of",
    "parse_message",
    "status_message",
]
