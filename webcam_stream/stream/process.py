"""Owner of one external capture process and its output pipes."""

from __future__ import annotations

import asyncio
import re
from typing import AsyncIterator, Callable, List, Optional, Sequence

import psutil

from webcam_stream.core.asyncio_utils import create_logged_task
from webcam_stream.core.errors import SpawnError, TerminationError
from webcam_stream.core.logging_utils import get_module_logger

DEFAULT_CHUNK_SIZE = 64 * 1024

# ffmpeg ends progress lines with a bare carriage return
_LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")

ExitCallback = Callable[[int], None]


class CaptureProcess:
    """Handle on a running capture process.

    ``stdout`` carries frame data and is read as raw chunks; ``stderr``
    carries diagnostics and is read as text lines. Exit is observed by a
    monitor task and delivered once to every exit callback.

    Build instances with :meth:`spawn`.
    """

    def __init__(self, process: asyncio.subprocess.Process, command: Sequence[str]) -> None:
        self.process = process
        self.command = list(command)
        self.logger = get_module_logger("CaptureProcess").getChild(str(process.pid))
        self._exit_callbacks: List[ExitCallback] = []
        self._exit_code: Optional[int] = None
        self._monitor_task = create_logged_task(
            self._monitor_exit(),
            logger=self.logger,
            context=f"capture-exit-{process.pid}",
        )

    @classmethod
    async def spawn(cls, command: Sequence[str]) -> "CaptureProcess":
        """Start ``command`` with piped stdout/stderr.

        Raises:
            SpawnError: the executable is missing or could not be started.
        """
        if not command:
            raise SpawnError("Empty capture command")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SpawnError(f"Failed to start {command[0]}: {exc}", command=command) from exc

        handle = cls(process, command)
        handle.logger.debug("Spawned: %s", " ".join(command))
        return handle

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._exit_code

    async def wait(self) -> int:
        return await self.process.wait()

    async def read_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield stdout data as it arrives until EOF."""
        stream = self.process.stdout
        if stream is None:
            return
        while True:
            chunk = await stream.read(chunk_size)
            if not chunk:
                return
            yield chunk

    async def read_lines(self, chunk_size: int = 4096) -> AsyncIterator[str]:
        """Yield non-empty stderr lines, split on newlines and carriage returns."""
        stream = self.process.stderr
        if stream is None:
            return
        pending = ""
        while True:
            chunk = await stream.read(chunk_size)
            if not chunk:
                break
            pending += chunk.decode("utf-8", errors="replace")
            *lines, pending = _LINE_SPLIT_RE.split(pending)
            for line in lines:
                line = line.strip()
                if line:
                    yield line
        pending = pending.strip()
        if pending:
            yield pending

    def add_exit_callback(self, callback: ExitCallback) -> None:
        """Call ``callback(returncode)`` once the process exits.

        If the exit has already been observed the callback runs immediately.
        """
        if self._exit_code is not None:
            self._invoke(callback, self._exit_code)
            return
        self._exit_callbacks.append(callback)

    def terminate(self) -> None:
        """Kill the process and its children without waiting for them to die.

        Failures (already exited, access denied) are logged, never raised.
        """
        try:
            self._kill_tree()
        except TerminationError as exc:
            self.logger.debug("Terminate ignored: %s", exc)

    def _kill_tree(self) -> None:
        if self._exit_code is not None or self.process.returncode is not None:
            raise TerminationError("process already exited", pid=self.pid)
        try:
            parent = psutil.Process(self.pid)
            children = parent.children(recursive=True)
        except psutil.Error as exc:
            raise TerminationError(f"cannot inspect process: {exc}", pid=self.pid) from exc

        for child in children:
            try:
                child.kill()
            except psutil.Error as exc:
                self.logger.debug("Could not kill child %d: %s", child.pid, exc)

        try:
            parent.kill()
        except psutil.Error as exc:
            raise TerminationError(f"kill failed: {exc}", pid=self.pid) from exc
        self.logger.debug("Kill signal sent (%d children)", len(children))

    async def _monitor_exit(self) -> None:
        code = await self.process.wait()
        self._exit_code = code
        self.logger.debug("Exited with code %s", code)
        callbacks, self._exit_callbacks = self._exit_callbacks, []
        for callback in callbacks:
            self._invoke(callback, code)

    def _invoke(self, callback: ExitCallback, code: int) -> None:
        try:
            callback(code)
        except Exception:
            self.logger.exception("Exit callback failed")


__all__ = ["CaptureProcess", "DEFAULT_CHUNK_SIZE", "ExitCallback"]
