"""Split an MJPEG byte stream into complete JPEG frames.

ffmpeg's ``-f mjpeg`` output is a bare concatenation of JPEG images with
no length prefix, so frame boundaries are found by scanning for the
Start-Of-Image (``FF D8``) and End-Of-Image (``FF D9``) marker pairs.
Reads from the pipe arrive in arbitrary sizes; a marker pair may be split
across two reads and one read may hold several frames.
"""

from __future__ import annotations

from typing import Iterator, Optional

from webcam_stream.core.logging_utils import get_module_logger

SOI_MARKER = b"\xff\xd8"
EOI_MARKER = b"\xff\xd9"
_MARKER_PREFIX = 0xFF


class FrameDemuxer:
    """Incremental frame extractor for one stream.

    Not thread-safe; each stream owns its own instance and feeds it from a
    single reader.

    Args:
        max_buffer_bytes: Upper bound on bytes held for a frame whose end
            marker has not arrived. When exceeded the partial frame is
            discarded. ``None`` or ``0`` keeps the buffer unbounded.
        name: Label used in log messages.
    """

    def __init__(self, max_buffer_bytes: Optional[int] = None, name: str = "") -> None:
        self.max_buffer_bytes = max_buffer_bytes or None
        self.logger = get_module_logger("Demuxer").getChild(name) if name else get_module_logger("Demuxer")
        self._buffer = bytearray()
        # Where the next EOI search starts; only meaningful while the buffer
        # begins with an SOI marker.
        self._eoi_cursor = 0
        self.frames_emitted = 0
        self.bytes_discarded = 0

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
        self._eoi_cursor = 0

    def feed(self, chunk: bytes) -> Iterator[bytes]:
        """Append ``chunk`` and return an iterator over newly completed frames.

        The chunk is buffered immediately; frames are cut lazily as the
        iterator is consumed. Frames left unconsumed stay buffered and are
        returned by a later iterator.
        """
        if chunk:
            self._buffer += chunk
        return self._drain()

    def _drain(self) -> Iterator[bytes]:
        buf = self._buffer
        while buf:
            soi = buf.find(SOI_MARKER)
            if soi < 0:
                self._discard_without_soi()
                return

            if soi > 0:
                self._discard(soi)
                self._eoi_cursor = 0

            eoi = buf.find(EOI_MARKER, max(len(SOI_MARKER), self._eoi_cursor))
            if eoi < 0:
                # Resume at the last byte: it may be the FF of a split EOI.
                self._eoi_cursor = max(len(SOI_MARKER), len(buf) - 1)
                self._enforce_limit()
                return

            end = eoi + len(EOI_MARKER)
            frame = bytes(buf[:end])
            del buf[:end]
            self._eoi_cursor = 0
            self.frames_emitted += 1
            yield frame

    def _discard(self, count: int) -> None:
        del self._buffer[:count]
        self.bytes_discarded += count

    def _discard_without_soi(self) -> None:
        # Keep a trailing FF: it may be the first half of an SOI.
        keep = 1 if self._buffer[-1] == _MARKER_PREFIX else 0
        drop = len(self._buffer) - keep
        if drop:
            self._discard(drop)
        self._eoi_cursor = 0

    def _enforce_limit(self) -> None:
        if self.max_buffer_bytes is None or len(self._buffer) <= self.max_buffer_bytes:
            return
        next_soi = self._buffer.find(SOI_MARKER, len(SOI_MARKER))
        if next_soi > 0:
            self.logger.warning(
                "Dropping %d bytes of an unterminated frame; resuming at the next start-of-image",
                next_soi,
            )
            self._discard(next_soi)
            # The EOI scan already covered the rest of the buffer.
            self._eoi_cursor = max(len(SOI_MARKER), len(self._buffer) - 1)
            self._enforce_limit()
            return
        self.logger.warning(
            "Dropping %d buffered bytes: no end-of-image marker within %d bytes",
            len(self._buffer),
            self.max_buffer_bytes,
        )
        # Skip past this SOI so the next scan looks for a fresh frame start.
        self._discard(len(self._buffer) - 1 if self._buffer[-1] == _MARKER_PREFIX else len(self._buffer))
        self._eoi_cursor = 0


__all__ = ["EOI_MARKER", "FrameDemuxer", "SOI_MARKER"]
