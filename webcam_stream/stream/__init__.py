"""Capture-stream engine: ffmpeg processes in, JPEG frame events out."""

from .backends import CaptureBackend, get_backend
from .demuxer import FrameDemuxer
from .enumerator import DeviceEnumerator
from .events import (
    ErrorEvent,
    ErrorKind,
    EventChannel,
    EventKind,
    FrameEvent,
    StreamStartedEvent,
    StreamStoppedEvent,
)
from .process import CaptureProcess
from .registry import SessionRegistry
from .session import SessionState, StreamSession
from .settings import CaptureSettings
from .types import DeviceDescriptor, DeviceKind

__all__ = [
    'CaptureBackend',
    'CaptureProcess',
    'CaptureSettings',
    'DeviceDescriptor',
    'DeviceEnumerator',
    'DeviceKind',
    'ErrorEvent',
    'ErrorKind',
    'EventChannel',
    'EventKind',
    'FrameDemuxer',
    'FrameEvent',
    'SessionRegistry',
    'SessionState',
    'StreamSession',
    'StreamStartedEvent',
    'StreamStoppedEvent',
    'get_backend',
]
