"""Unit tests for CaptureProcess."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import psutil
import pytest

from webcam_stream.core.errors import SpawnError
from webcam_stream.stream.process import CaptureProcess


def make_os_process(pid: int = 1234, stdout: bytes = b"", stderr: bytes = b""):
    """asyncio.subprocess.Process stand-in whose exit is controlled by the test."""
    proc = MagicMock()
    proc.pid = pid
    proc.returncode = None
    proc.stdout = asyncio.StreamReader()
    proc.stderr = asyncio.StreamReader()
    proc.stdout.feed_data(stdout)
    proc.stderr.feed_data(stderr)
    exited = asyncio.Event()

    async def wait():
        await exited.wait()
        return proc.returncode

    def finish(code: int):
        proc.returncode = code
        proc.stdout.feed_eof()
        proc.stderr.feed_eof()
        exited.set()

    proc.wait = wait
    return proc, finish


class TestSpawn:

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError(2, "No such file"))):
            with pytest.raises(SpawnError) as excinfo:
                await CaptureProcess.spawn(["no-such-ffmpeg", "-i", "x"])

        assert excinfo.value.command == ["no-such-ffmpeg", "-i", "x"]
        assert "no-such-ffmpeg" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_permission_denied(self):
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=PermissionError(13, "denied"))):
            with pytest.raises(SpawnError):
                await CaptureProcess.spawn(["ffmpeg"])

    @pytest.mark.asyncio
    async def test_empty_command(self):
        with pytest.raises(SpawnError):
            await CaptureProcess.spawn([])

    @pytest.mark.asyncio
    async def test_pipes_requested(self):
        proc, finish = make_os_process()
        create = AsyncMock(return_value=proc)

        with patch("asyncio.create_subprocess_exec", create):
            handle = await CaptureProcess.spawn(["ffmpeg", "-i", "x"])

        args, kwargs = create.call_args
        assert args == ("ffmpeg", "-i", "x")
        assert kwargs["stdout"] == asyncio.subprocess.PIPE
        assert kwargs["stderr"] == asyncio.subprocess.PIPE
        assert handle.pid == 1234
        finish(0)
        await asyncio.sleep(0)
        await asyncio.sleep(0)


class TestOutputChannels:

    @pytest.mark.asyncio
    async def test_read_chunks_until_eof(self):
        proc, finish = make_os_process(stdout=b"\xff\xd8abc\xff\xd9")
        handle = CaptureProcess(proc, ["ffmpeg"])
        finish(0)
        await asyncio.sleep(0)

        data = b"".join([chunk async for chunk in handle.read_chunks()])

        assert data == b"\xff\xd8abc\xff\xd9"

    @pytest.mark.asyncio
    async def test_read_lines_splits_on_carriage_return(self):
        stderr = b"frame=1 fps=15\rframe=2 fps=15\r\nError opening input\n\n  \nlast line"
        proc, finish = make_os_process(stderr=stderr)
        handle = CaptureProcess(proc, ["ffmpeg"])
        finish(1)

        lines = [line async for line in handle.read_lines()]

        assert lines == ["frame=1 fps=15", "frame=2 fps=15", "Error opening input", "last line"]

    @pytest.mark.asyncio
    async def test_read_lines_tolerates_bad_utf8(self):
        proc, finish = make_os_process(stderr=b"caf\xe9 error\n")
        handle = CaptureProcess(proc, ["ffmpeg"])
        finish(0)
        await asyncio.sleep(0)

        lines = [line async for line in handle.read_lines()]

        assert len(lines) == 1
        assert lines[0].endswith("error")


class TestExitCallbacks:

    @pytest.mark.asyncio
    async def test_callback_fires_once_with_code(self):
        proc, finish = make_os_process()
        handle = CaptureProcess(proc, ["ffmpeg"])
        callback = MagicMock()
        handle.add_exit_callback(callback)

        finish(3)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        callback.assert_called_once_with(3)
        assert handle.returncode == 3

    @pytest.mark.asyncio
    async def test_callback_after_exit_fires_immediately(self):
        proc, finish = make_os_process()
        handle = CaptureProcess(proc, ["ffmpeg"])
        finish(0)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        callback = MagicMock()
        handle.add_exit_callback(callback)

        callback.assert_called_once_with(0)

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_block_others(self):
        proc, finish = make_os_process()
        handle = CaptureProcess(proc, ["ffmpeg"])
        handle.add_exit_callback(MagicMock(side_effect=RuntimeError("bug")))
        second = MagicMock()
        handle.add_exit_callback(second)

        finish(1)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        second.assert_called_once_with(1)


class TestTerminate:

    @pytest.mark.asyncio
    async def test_kills_children_then_parent(self):
        proc, finish = make_os_process(pid=555)
        handle = CaptureProcess(proc, ["ffmpeg"])
        order = []
        child = MagicMock()
        child.kill.side_effect = lambda: order.append("child")
        parent = MagicMock()
        parent.children.return_value = [child]
        parent.kill.side_effect = lambda: order.append("parent")

        with patch("webcam_stream.stream.process.psutil.Process", return_value=parent) as process_cls:
            handle.terminate()

        process_cls.assert_called_once_with(555)
        parent.children.assert_called_once_with(recursive=True)
        assert order == ["child", "parent"]
        finish(-9)
        await asyncio.sleep(0)

    @pytest.mark.asyncio
    async def test_already_exited_is_ignored(self):
        proc, finish = make_os_process()
        handle = CaptureProcess(proc, ["ffmpeg"])
        finish(0)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        with patch("webcam_stream.stream.process.psutil.Process") as process_cls:
            handle.terminate()

        process_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_vanished_process_is_swallowed(self):
        proc, finish = make_os_process(pid=777)
        handle = CaptureProcess(proc, ["ffmpeg"])

        with patch("webcam_stream.stream.process.psutil.Process", side_effect=psutil.NoSuchProcess(777)):
            handle.terminate()

        finish(0)
        await asyncio.sleep(0)

    @pytest.mark.asyncio
    async def test_access_denied_on_kill_is_swallowed(self):
        proc, finish = make_os_process(pid=888)
        handle = CaptureProcess(proc, ["ffmpeg"])
        parent = MagicMock()
        parent.children.return_value = []
        parent.kill.side_effect = psutil.AccessDenied(888)

        with patch("webcam_stream.stream.process.psutil.Process", return_value=parent):
            handle.terminate()

        parent.kill.assert_called_once()
        finish(0)
        await asyncio.sleep(0)
