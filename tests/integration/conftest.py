"""Integration test fixtures for real capture subprocesses.

This conftest provides fixtures for integration tests that:
- Spawn real child processes through CaptureProcess
- Drive them through SessionRegistry end to end
- Need no camera; ffmpeg-backed tests skip when ffmpeg is missing

Fixtures in this file complement (not duplicate) the root conftest.py fixtures.
"""

from __future__ import annotations

import pytest

from tests.infrastructure.mocks.capture_mocks import EventRecorder, RecordingSpawner
from webcam_stream.stream.backends import CaptureBackend
from webcam_stream.stream.events import EventChannel
from webcam_stream.stream.registry import SessionRegistry
from webcam_stream.stream.settings import CaptureSettings


# =============================================================================
# Stream Engine Fixtures
# =============================================================================

@pytest.fixture
def channel() -> EventChannel:
    return EventChannel("integration")


@pytest.fixture
def recorder(channel: EventChannel) -> EventRecorder:
    return EventRecorder(channel)


@pytest.fixture
def process_spawner() -> RecordingSpawner:
    return RecordingSpawner()


@pytest.fixture
def make_registry(channel, process_spawner):
    """Build a SessionRegistry around real processes for a given backend."""

    def _make(backend: CaptureBackend, ffmpeg_path: str = "ffmpeg") -> SessionRegistry:
        return SessionRegistry(
            channel,
            settings=CaptureSettings(resolution="320x240"),
            backend=backend,
            ffmpeg_path=ffmpeg_path,
            max_buffer_bytes=1024 * 1024,
            spawner=process_spawner,
        )

    return _make
