"""Exception hierarchy for the capture-stream engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence


class WebcamStreamError(Exception):
    """Base exception for all webcam stream errors."""


class SpawnError(WebcamStreamError):
    """The capture process could not be started."""

    def __init__(self, message: str, command: Optional[Sequence[str]] = None):
        self.command = list(command) if command else []
        super().__init__(message)


class TerminationError(WebcamStreamError):
    """A best-effort kill of a capture process failed."""

    def __init__(self, message: str, pid: Optional[int] = None):
        self.pid = pid
        super().__init__(message)


class EnumerationError(WebcamStreamError):
    """Listing capture devices failed."""


class ConfigError(WebcamStreamError):
    """A configuration value is missing or invalid."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


@dataclass(frozen=True)
class DiagnosticError:
    """An error-looking line read from a running process's diagnostic channel.

    Not raised: the stream keeps running and the line is reported as an
    ``ffmpeg-error`` event.
    """

    device_id: str
    line: str

    def __str__(self) -> str:
        return f"[{self.device_id}] {self.line}"


__all__ = [
    "ConfigError",
    "DiagnosticError",
    "EnumerationError",
    "SpawnError",
    "TerminationError",
    "WebcamStreamError",
]
