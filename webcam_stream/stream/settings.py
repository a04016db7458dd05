"""Capture parameters passed to ffmpeg for one stream."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional, Tuple

DEFAULT_FRAME_RATE = 15
DEFAULT_QUALITY = 5
DEFAULT_RESOLUTION = "640x480"

# ffmpeg's -q:v scale for mjpeg, lower is better
MIN_QUALITY = 2
MAX_QUALITY = 31

_RESOLUTION_RE = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")


def parse_resolution(value: str) -> Tuple[int, int]:
    """Parse ``"WxH"`` into ``(width, height)``; raises ValueError."""
    match = _RESOLUTION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid resolution '{value}', expected WIDTHxHEIGHT")
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid resolution '{value}', dimensions must be positive")
    return width, height


@dataclass(frozen=True)
class CaptureSettings:
    frame_rate: int = DEFAULT_FRAME_RATE
    quality: int = DEFAULT_QUALITY
    resolution: str = DEFAULT_RESOLUTION

    def __post_init__(self) -> None:
        if isinstance(self.frame_rate, bool) or not isinstance(self.frame_rate, int):
            raise ValueError(f"Frame rate must be an integer, got {self.frame_rate!r}")
        if self.frame_rate <= 0:
            raise ValueError(f"Frame rate must be positive, got {self.frame_rate}")
        if not MIN_QUALITY <= self.quality <= MAX_QUALITY:
            raise ValueError(
                f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {self.quality}"
            )
        width, height = parse_resolution(self.resolution)
        object.__setattr__(self, "resolution", f"{width}x{height}")

    @property
    def size(self) -> Tuple[int, int]:
        return parse_resolution(self.resolution)

    def with_overrides(
        self,
        resolution: Optional[str] = None,
        frame_rate: Optional[int] = None,
    ) -> "CaptureSettings":
        """Copy with per-stream overrides; ``None`` keeps the current value."""
        changes = {}
        if resolution is not None:
            changes["resolution"] = resolution
        if frame_rate is not None:
            changes["frame_rate"] = frame_rate
        return replace(self, **changes) if changes else self

    def to_dict(self) -> dict:
        return {
            "frame_rate": self.frame_rate,
            "quality": self.quality,
            "resolution": self.resolution,
        }


__all__ = [
    "CaptureSettings",
    "DEFAULT_FRAME_RATE",
    "DEFAULT_QUALITY",
    "DEFAULT_RESOLUTION",
    "parse_resolution",
]
