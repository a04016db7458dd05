"""End-to-end capture tests with real child processes.

A Python script stands in for ffmpeg and writes JPEG frames to its real
stdout pipe, so these tests cover what the unit suite fakes:
- Pipe reading and demuxing of real, arbitrarily chunked output
- The exit monitor reporting a natural exit code
- The psutil tree kill on stop, with exactly one stream-stopped event
"""

from __future__ import annotations

import asyncio
import shutil
import textwrap

import psutil
import pytest

from tests.infrastructure.mocks.capture_mocks import ScriptBackend, make_jpeg
from webcam_stream.stream.backends import CaptureBackend, get_backend
from webcam_stream.stream.enumerator import DeviceEnumerator
from webcam_stream.stream.events import ErrorKind, EventKind
from webcam_stream.stream.jpeg import parse_jpeg_dimensions


FRAME = make_jpeg(320, 240, payload=bytes(range(1, 200)) * 20)
FRAME_COUNT = 50
EXIT_CODE = 3
WAIT_TIMEOUT = 10.0

FINITE_SCRIPT = textwrap.dedent("""
    import sys, time
    frame = bytes.fromhex("{frame}")
    for _ in range({count}):
        sys.stdout.buffer.write(frame)
    sys.stdout.buffer.flush()
    sys.stderr.write("Error: capture finished\\n")
    sys.stderr.flush()
    time.sleep(0.5)
    sys.exit({code})
""").format(frame=FRAME.hex(), count=FRAME_COUNT, code=EXIT_CODE)

ENDLESS_SCRIPT = textwrap.dedent("""
    import subprocess, sys, time
    subprocess.Popen(
        [sys.executable, "-c", "import time; time.sleep(60)"],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    frame = bytes.fromhex("{frame}")
    while True:
        sys.stdout.buffer.write(frame)
        sys.stdout.buffer.flush()
        time.sleep(0.01)
""").format(frame=FRAME.hex())


async def wait_until(predicate, timeout: float = WAIT_TIMEOUT) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.02)
    return True


@pytest.fixture
def script_backend() -> ScriptBackend:
    return ScriptBackend({"finite": FINITE_SCRIPT, "endless": ENDLESS_SCRIPT})


# =============================================================================
# Scripted Capture Process
# =============================================================================


class TestScriptedCapture:

    @pytest.mark.asyncio
    async def test_all_frames_then_exit_code(self, make_registry, script_backend, recorder):
        registry = make_registry(script_backend)

        assert await registry.start_stream("finite")
        assert await wait_until(lambda: recorder.of(EventKind.STREAM_STOPPED))

        frames = recorder.of(EventKind.FRAME)
        assert len(frames) == FRAME_COUNT
        assert all(event.data == FRAME for event in frames)

        (error,) = recorder.of(EventKind.ERROR)
        assert error.error_kind is ErrorKind.FFMPEG_ERROR
        assert error.detail == "Error: capture finished"

        (stopped,) = recorder.of(EventKind.STREAM_STOPPED)
        assert stopped.device_id == "finite"
        assert stopped.exit_code == EXIT_CODE
        assert recorder.kinds[0] is EventKind.STREAM_STARTED
        assert not registry.is_streaming("finite")

    @pytest.mark.asyncio
    async def test_stop_kills_process_tree(self, make_registry, script_backend, process_spawner, recorder):
        registry = make_registry(script_backend)

        assert await registry.start_stream("endless")
        (process,) = process_spawner.processes
        assert await wait_until(lambda: recorder.of(EventKind.FRAME))
        assert await wait_until(lambda: psutil.Process(process.pid).children())
        children = psutil.Process(process.pid).children(recursive=True)

        assert registry.stop_stream("endless")
        code = await asyncio.wait_for(process.wait(), WAIT_TIMEOUT)
        _, alive = psutil.wait_procs(children, timeout=WAIT_TIMEOUT)
        # Give the exit monitor a chance to report the late exit.
        await asyncio.sleep(0.2)

        assert code != 0
        assert alive == []
        stopped = recorder.of(EventKind.STREAM_STOPPED)
        assert [(event.device_id, event.exit_code) for event in stopped] == [("endless", 0)]
        assert not registry.is_streaming("endless")

    @pytest.mark.asyncio
    async def test_no_frames_after_stop(self, make_registry, script_backend, process_spawner, recorder):
        registry = make_registry(script_backend)

        assert await registry.start_stream("endless")
        (process,) = process_spawner.processes
        assert await wait_until(lambda: len(recorder.of(EventKind.FRAME)) >= 3)

        registry.stop_stream("endless")
        seen = len(recorder.of(EventKind.FRAME))
        await asyncio.wait_for(process.wait(), WAIT_TIMEOUT)
        await asyncio.sleep(0.2)

        assert len(recorder.of(EventKind.FRAME)) == seen
        assert recorder.kinds[-1] is EventKind.STREAM_STOPPED


# =============================================================================
# ffmpeg
# =============================================================================


class LavfiBackend(CaptureBackend):
    """ffmpeg's synthetic test source, paced to real time."""

    input_format = "lavfi"

    def capture_command(self, device_id, settings, ffmpeg_path="ffmpeg"):
        return [
            ffmpeg_path,
            "-hide_banner",
            "-re",
            "-f", "lavfi",
            "-i", f"testsrc=size={settings.resolution}:rate={settings.frame_rate}",
            "-f", "mjpeg",
            "-q:v", str(settings.quality),
            "-",
        ]


@pytest.mark.slow
@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
class TestFfmpegCapture:

    @pytest.mark.asyncio
    async def test_synthetic_source_frames(self, make_registry, process_spawner, recorder):
        registry = make_registry(LavfiBackend(), ffmpeg_path=shutil.which("ffmpeg"))

        assert await registry.start_stream("testsrc")
        assert await wait_until(lambda: len(recorder.of(EventKind.FRAME)) >= 5)
        registry.stop_stream("testsrc")
        await asyncio.wait_for(process_spawner.processes[0].wait(), WAIT_TIMEOUT)

        first = recorder.of(EventKind.FRAME)[0]
        assert tuple(parse_jpeg_dimensions(first.data)) == (320, 240)
        stopped = recorder.of(EventKind.STREAM_STOPPED)
        assert [event.exit_code for event in stopped] == [0]


@pytest.mark.hardware
class TestWebcamCapture:

    @pytest.mark.asyncio
    async def test_first_webcam_streams(self, make_registry, process_spawner, channel, recorder):
        backend = get_backend()
        devices = await DeviceEnumerator(channel, backend=backend).list_devices()
        if not devices:
            pytest.skip("No webcam found")

        registry = make_registry(backend)
        device_id = devices[0].id

        assert await registry.start_stream(device_id)
        try:
            assert await wait_until(lambda: recorder.of(EventKind.FRAME))
        finally:
            registry.stop_stream(device_id)
            await asyncio.wait_for(process_spawner.processes[0].wait(), WAIT_TIMEOUT)

        assert recorder.of(EventKind.FRAME)[0].data.startswith(b"\xff\xd8")
