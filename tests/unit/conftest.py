"""Unit test fixtures for isolated, fast test execution.

This conftest provides fixtures specifically for unit tests that:
- Run in complete isolation (no ffmpeg, no camera)
- Execute quickly (< 1s per test)
- Use fake capture processes for all subprocess I/O

This file provides:
- Isolated configuration fixtures (config_manager, write_config)
- Stream engine fixtures (channel, recorder, spawner, registry)
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from tests.infrastructure.mocks.capture_mocks import EventRecorder, FakeSpawner
from webcam_stream.core.config_manager import ConfigManager
from webcam_stream.stream.backends import V4L2Backend
from webcam_stream.stream.events import EventChannel
from webcam_stream.stream.registry import SessionRegistry
from webcam_stream.stream.settings import CaptureSettings


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def config_manager(tmp_path: Path) -> ConfigManager:
    """ConfigManager whose override directory is private to the test."""
    overrides = tmp_path / "overrides"
    overrides.mkdir()
    return ConfigManager(overrides_dir=overrides)


@pytest.fixture(scope="function")
def write_config(tmp_path: Path) -> Callable[[str], Path]:
    """Write ``config.txt`` content into the temp directory.

    Example:
        def test_port(write_config):
            path = write_config("port = 4000\\n")
    """

    def _write(content: str, name: str = "config.txt") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


# =============================================================================
# Stream Engine Fixtures
# =============================================================================

@pytest.fixture
def channel() -> EventChannel:
    return EventChannel("test")


@pytest.fixture
def recorder(channel: EventChannel) -> EventRecorder:
    return EventRecorder(channel)


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def backend() -> V4L2Backend:
    return V4L2Backend()


@pytest.fixture
def registry(channel, spawner, backend) -> SessionRegistry:
    return SessionRegistry(
        channel,
        settings=CaptureSettings(),
        backend=backend,
        ffmpeg_path="ffmpeg",
        max_buffer_bytes=1024 * 1024,
        spawner=spawner,
    )
