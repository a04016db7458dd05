"""
Stream Session - one capture process bound to one frame demuxer.

A session moves through ``IDLE -> STARTING -> STREAMING -> STOPPING ->
IDLE``; an unexpected process exit goes straight from ``STREAMING`` back to
``IDLE``. Sessions are created and owned by the SessionRegistry.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Optional, Tuple

from webcam_stream.core.asyncio_utils import cancel_tasks, create_logged_task
from webcam_stream.core.errors import DiagnosticError
from webcam_stream.core.logging_utils import get_module_logger
from webcam_stream.stream.demuxer import FrameDemuxer
from webcam_stream.stream.events import ErrorEvent, ErrorKind, EventChannel, FrameEvent
from webcam_stream.stream.jpeg import FrameSize, parse_jpeg_dimensions
from webcam_stream.stream.process import CaptureProcess
from webcam_stream.stream.settings import CaptureSettings

# Case-insensitive substrings that mark a diagnostic line as an error
ERROR_VOCABULARY: Tuple[str, ...] = ("error", "invalid")


class SessionState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    STOPPING = "stopping"


def is_error_line(line: str) -> bool:
    lowered = line.lower()
    return any(word in lowered for word in ERROR_VOCABULARY)


ExitHandler = Callable[["StreamSession", int], None]


class StreamSession:

    def __init__(
        self,
        device_id: str,
        settings: CaptureSettings,
        channel: EventChannel,
        *,
        max_buffer_bytes: Optional[int] = None,
    ) -> None:
        self.device_id = device_id
        self.settings = settings
        self.channel = channel
        self.logger = get_module_logger("StreamSession").getChild(device_id)
        self.demuxer = FrameDemuxer(max_buffer_bytes=max_buffer_bytes, name=device_id)

        self.state = SessionState.IDLE
        self.process: Optional[CaptureProcess] = None
        self.exit_code: Optional[int] = None
        self.frame_size: Optional[FrameSize] = None

        self._frame_task: Optional[asyncio.Task] = None
        self._diagnostic_task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self.state in (SessionState.STARTING, SessionState.STREAMING)

    def begin_start(self) -> None:
        self.state = SessionState.STARTING

    def attach(self, process: CaptureProcess, on_exit: ExitHandler) -> None:
        """Wire ``process`` output into this session and start streaming."""
        self.process = process
        self.state = SessionState.STREAMING
        self._frame_task = create_logged_task(
            self._pump_frames(),
            logger=self.logger,
            context=f"frames-{self.device_id}",
        )
        self._diagnostic_task = create_logged_task(
            self._pump_diagnostics(),
            logger=self.logger,
            context=f"diagnostics-{self.device_id}",
        )
        process.add_exit_callback(lambda code: on_exit(self, code))
        self.logger.info(
            "Streaming (pid %s, %s @ %dfps, q=%d)",
            process.pid,
            self.settings.resolution,
            self.settings.frame_rate,
            self.settings.quality,
        )

    def stop(self) -> None:
        """Request termination; returns before the process has exited."""
        self.state = SessionState.STOPPING
        if self.process is not None:
            self.process.terminate()
        self._release()

    def mark_exited(self, code: int) -> None:
        self.exit_code = code
        self.logger.info("Capture process exited with code %s", code)
        self._release()

    def _release(self) -> None:
        cancel_tasks((self._frame_task, self._diagnostic_task))
        self.demuxer.reset()
        self.state = SessionState.IDLE

    def handle_chunk(self, chunk: bytes) -> int:
        """Feed stdout data through the demuxer, publishing each frame."""
        emitted = 0
        for frame in self.demuxer.feed(chunk):
            if self.state is not SessionState.STREAMING:
                break
            if self.frame_size is None:
                self._record_frame_size(frame)
            self.channel.publish(FrameEvent(self.device_id, frame))
            emitted += 1
        return emitted

    def handle_diagnostic(self, line: str) -> Optional[DiagnosticError]:
        if not is_error_line(line):
            self.logger.debug("ffmpeg: %s", line)
            return None
        diagnostic = DiagnosticError(self.device_id, line)
        self.logger.warning("ffmpeg reported: %s", diagnostic)
        if self.state is SessionState.STREAMING:
            self.channel.publish(ErrorEvent(ErrorKind.FFMPEG_ERROR, line, device_id=self.device_id))
        return diagnostic

    def _record_frame_size(self, frame: bytes) -> None:
        size = parse_jpeg_dimensions(frame)
        if size is None:
            return
        self.frame_size = size
        if tuple(size) != self.settings.size:
            self.logger.warning(
                "Device delivers %s, requested %s",
                size,
                self.settings.resolution,
            )

    async def _pump_frames(self) -> None:
        async for chunk in self.process.read_chunks():
            self.handle_chunk(chunk)
        self.logger.debug("Frame channel closed (%d frames)", self.demuxer.frames_emitted)

    async def _pump_diagnostics(self) -> None:
        async for line in self.process.read_lines():
            self.handle_diagnostic(line)

    def describe(self) -> dict:
        return {
            "device_id": self.device_id,
            "state": self.state.value,
            "pid": self.process.pid if self.process is not None else None,
            "settings": self.settings.to_dict(),
            "frames": self.demuxer.frames_emitted,
            "frame_size": str(self.frame_size) if self.frame_size else None,
        }


__all__ = [
    "ERROR_VOCABULARY",
    "SessionState",
    "StreamSession",
    "is_error_line",
]
