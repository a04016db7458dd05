"""Read image dimensions from a JPEG header without decoding it."""

from __future__ import annotations

from typing import NamedTuple, Optional

# Baseline, extended sequential and progressive start-of-frame markers
_SOF_MARKERS = frozenset({0xC0, 0xC1, 0xC2})
_STANDALONE_MARKERS = frozenset({0x01, *range(0xD0, 0xD9)})
_SOS = 0xDA
_EOI = 0xD9


class FrameSize(NamedTuple):
    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


def parse_jpeg_dimensions(data: bytes) -> Optional[FrameSize]:
    """Return the frame size from the first SOF segment, or None.

    Walks the marker segments between SOI and the first scan. Returns None
    for empty, truncated, or SOF-less data instead of raising.
    """
    if len(data) < 4 or data[0] != 0xFF or data[1] != 0xD8:
        return None

    pos = 2
    size = len(data)
    while pos + 4 <= size:
        if data[pos] != 0xFF:
            return None
        marker = data[pos + 1]
        if marker == 0xFF:
            pos += 1
            continue
        if marker in _STANDALONE_MARKERS:
            pos += 2
            continue
        if marker in (_SOS, _EOI):
            return None

        length = (data[pos + 2] << 8) | data[pos + 3]
        if marker in _SOF_MARKERS:
            if pos + 9 > size:
                return None
            height = (data[pos + 5] << 8) | data[pos + 6]
            width = (data[pos + 7] << 8) | data[pos + 8]
            return FrameSize(width, height)
        if length < 2:
            return None
        pos += 2 + length

    return None


__all__ = ["FrameSize", "parse_jpeg_dimensions"]
