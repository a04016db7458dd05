"""Capture device discovery through ffmpeg's device listing or sysfs."""

from __future__ import annotations

import asyncio
from typing import List, Optional

from webcam_stream.core.errors import EnumerationError
from webcam_stream.core.logging_utils import get_module_logger
from webcam_stream.stream.backends import CaptureBackend, V4L2Backend, get_backend
from webcam_stream.stream.events import ErrorEvent, ErrorKind, EventChannel
from webcam_stream.stream.types import DeviceDescriptor

LIST_TIMEOUT_SECONDS = 5.0


class DeviceEnumerator:

    def __init__(
        self,
        channel: EventChannel,
        backend: Optional[CaptureBackend] = None,
        ffmpeg_path: str = "ffmpeg",
        timeout: float = LIST_TIMEOUT_SECONDS,
    ) -> None:
        self.channel = channel
        self.backend = backend or get_backend()
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.logger = get_module_logger("DeviceEnumerator")

    async def list_devices(self) -> List[DeviceDescriptor]:
        """Video capture devices visible to the backend.

        Never raises: a failed listing publishes a ``list-error`` event and
        returns an empty list.
        """
        try:
            devices = await self._scan()
        except EnumerationError as exc:
            self.logger.error("Device listing failed: %s", exc)
            self.channel.publish(ErrorEvent(ErrorKind.LIST_ERROR, str(exc)))
            return []

        self.logger.info("Found %d video device(s)", len(devices))
        return devices

    async def _scan(self) -> List[DeviceDescriptor]:
        if isinstance(self.backend, V4L2Backend):
            try:
                return await asyncio.to_thread(self.backend.scan_sysfs)
            except OSError as exc:
                raise EnumerationError(f"Cannot read {self.backend.sysfs_root}: {exc}") from exc

        command = self.backend.list_command(self.ffmpeg_path)
        if not command:
            return []

        stderr = await self._run_listing(command)
        return self.backend.parse_device_list(stderr)

    async def _run_listing(self, command: List[str]) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise EnumerationError(f"Failed to run {command[0]}: {exc}") from exc

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise EnumerationError(f"Device listing timed out after {self.timeout:.0f}s") from None

        # ffmpeg exits non-zero after listing (there is no real input), so
        # the return code carries no information here.
        return (stderr or b"").decode("utf-8", errors="replace")


__all__ = ["DeviceEnumerator", "LIST_TIMEOUT_SECONDS"]
