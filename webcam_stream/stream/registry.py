"""
Session Registry - at most one capture session per device.

The registry is the only place sessions are created or removed. Its
device-id map is touched only from the event loop thread (start
reservation, stop, process exit callbacks), which serialises every
mutation. No exception leaves the public methods: failures become a
``False`` return plus an ``error`` event on the channel.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from webcam_stream.core.errors import SpawnError
from webcam_stream.core.logging_utils import get_module_logger
from webcam_stream.stream.backends import CaptureBackend, get_backend
from webcam_stream.stream.events import (
    ErrorEvent,
    ErrorKind,
    EventChannel,
    StreamStartedEvent,
    StreamStoppedEvent,
)
from webcam_stream.stream.process import CaptureProcess
from webcam_stream.stream.session import SessionState, StreamSession
from webcam_stream.stream.settings import CaptureSettings

Spawner = Callable[[Sequence[str]], Awaitable[CaptureProcess]]


class SessionRegistry:

    def __init__(
        self,
        channel: EventChannel,
        *,
        settings: Optional[CaptureSettings] = None,
        backend: Optional[CaptureBackend] = None,
        ffmpeg_path: str = "ffmpeg",
        max_buffer_bytes: Optional[int] = None,
        spawner: Spawner = CaptureProcess.spawn,
    ) -> None:
        self.channel = channel
        self.settings = settings or CaptureSettings()
        self.backend = backend or get_backend()
        self.ffmpeg_path = ffmpeg_path
        self.max_buffer_bytes = max_buffer_bytes
        self.logger = get_module_logger("SessionRegistry")
        self._spawn = spawner
        self._sessions: Dict[str, StreamSession] = {}

    def is_streaming(self, device_id: str) -> bool:
        return device_id in self._sessions

    def list_active_streams(self) -> List[str]:
        return list(self._sessions)

    def describe(self, device_id: str) -> Optional[dict]:
        session = self._sessions.get(device_id)
        return session.describe() if session is not None else None

    async def start_stream(
        self,
        device_id: str,
        resolution: Optional[str] = None,
        frame_rate: Optional[int] = None,
    ) -> bool:
        """Start capturing ``device_id``; True if a stream is (now) active.

        Starting a device that already has a session is a successful no-op.
        """
        if device_id in self._sessions:
            self.logger.info("Stream already active for device: %s", device_id)
            return True

        try:
            settings = self.settings.with_overrides(resolution=resolution, frame_rate=frame_rate)
        except ValueError as exc:
            self._report_start_error(device_id, str(exc))
            return False

        session = StreamSession(
            device_id,
            settings,
            self.channel,
            max_buffer_bytes=self.max_buffer_bytes,
        )
        # Reserve the slot before awaiting so overlapping starts see it.
        session.begin_start()
        self._sessions[device_id] = session

        command = self.backend.capture_command(device_id, settings, self.ffmpeg_path)
        self.logger.info("Starting stream for %s (%s @ %dfps)", device_id, settings.resolution, settings.frame_rate)

        try:
            process = await self._spawn(command)
        except SpawnError as exc:
            self._abandon(session)
            self._report_start_error(device_id, str(exc))
            return False
        except Exception as exc:
            self.logger.error("Unexpected error starting %s: %s", device_id, exc, exc_info=True)
            self._abandon(session)
            self._report_start_error(device_id, str(exc))
            return False

        if self._sessions.get(device_id) is not session:
            self.logger.info("Stream for %s was stopped while starting", device_id)
            process.terminate()
            return False

        session.attach(process, self._on_process_exit)
        self.channel.publish(StreamStartedEvent(device_id))
        return True

    def stop_stream(self, device_id: str) -> bool:
        """Stop ``device_id``'s stream without waiting for the process to die."""
        session = self._sessions.pop(device_id, None)
        if session is None:
            self.logger.info("No active stream for device: %s", device_id)
            return False

        self.logger.info("Stopping stream for %s", device_id)
        session.stop()
        self.channel.publish(StreamStoppedEvent(device_id, 0))
        return True

    def stop_all_streams(self) -> None:
        for device_id in list(self._sessions):
            self.stop_stream(device_id)

    async def set_resolution(
        self,
        device_id: str,
        resolution: str,
        frame_rate: Optional[int] = None,
    ) -> bool:
        """Restart ``device_id`` with new capture settings.

        Returns False if the device is not streaming, True without touching
        the process if nothing changes, otherwise the restart result.
        """
        session = self._sessions.get(device_id)
        if session is None:
            self.logger.info("Cannot change resolution, %s is not streaming", device_id)
            return False

        try:
            wanted = session.settings.with_overrides(resolution=resolution, frame_rate=frame_rate)
        except ValueError as exc:
            self.logger.warning("Rejected resolution change for %s: %s", device_id, exc)
            return False

        if wanted == session.settings:
            self.logger.debug("Resolution for %s already %s @ %dfps", device_id, wanted.resolution, wanted.frame_rate)
            return True

        self.logger.info(
            "Changing %s from %s @ %dfps to %s @ %dfps",
            device_id,
            session.settings.resolution,
            session.settings.frame_rate,
            wanted.resolution,
            wanted.frame_rate,
        )
        self.stop_stream(device_id)
        return await self.start_stream(device_id, resolution=wanted.resolution, frame_rate=wanted.frame_rate)

    def _on_process_exit(self, session: StreamSession, code: int) -> None:
        if self._sessions.get(session.device_id) is not session:
            # Already stopped, or replaced by a newer session for the device.
            return
        del self._sessions[session.device_id]
        session.mark_exited(code)
        self.channel.publish(StreamStoppedEvent(session.device_id, code))

    def _abandon(self, session: StreamSession) -> None:
        if self._sessions.get(session.device_id) is session:
            del self._sessions[session.device_id]
        session.state = SessionState.IDLE

    def _report_start_error(self, device_id: str, detail: str) -> None:
        self.logger.error("Error starting stream for %s: %s", device_id, detail)
        self.channel.publish(ErrorEvent(ErrorKind.START_ERROR, detail, device_id=device_id))


__all__ = ["SessionRegistry", "Spawner"]
