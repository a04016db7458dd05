"""WebSocket transport for webcam streams."""

from .connection import ClientConnection
from .server import WebcamServer

__all__ = ["ClientConnection", "WebcamServer"]
