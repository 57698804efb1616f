"""Process execution for external tools.

Runs a single child process at a time per runner, streaming both output
streams line by line to callbacks while keeping a bounded copy of the output.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Output buffer limits
MAX_OUTPUT_BYTES: int = 5_000_000  # 5MB per stream
MAX_OUTPUT_LINE: int = 10_000  # 10KB per line
# Bytes kept of an oversized line; enough for MAX_OUTPUT_LINE characters of UTF-8
MAX_LINE_BYTES: int = MAX_OUTPUT_LINE * 4
KILL_WAIT_TIMEOUT: float = 5.0

LineCallback = Callable[[str], None]


async def read_line(stream: asyncio.StreamReader) -> tuple[bytes, bool]:
    """Read one line, keeping at most MAX_LINE_BYTES of it.

    Lines longer than the reader's buffer limit are consumed in chunks.

    Returns:
        Line bytes (empty at end of stream) and whether bytes were dropped
    """
    data = bytearray()
    truncated = False
    while True:
        done = True
        try:
            chunk = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            chunk = e.partial
        except asyncio.LimitOverrunError as e:
            chunk = await stream.read(e.consumed)
            done = False

        room = MAX_LINE_BYTES - len(data)
        if len(chunk) > room:
            truncated = True
            chunk = chunk[:max(room, 0)]
        data += chunk
        if done:
            return bytes(data), truncated


@dataclass
class ProcessResult:
    """Exit code and retained output of a finished process."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        if self.stdout and self.stderr:
            return self.stdout + "\n" + self.stderr
        return self.stdout or self.stderr


class ProcessRunner:
    """Runs external commands without a shell.

    Only one process is tracked at a time; ``cancel`` kills it.
    """

    def __init__(self) -> None:
        self._current_process: asyncio.subprocess.Process | None = None
        self._cancel_requested = False

    @property
    def is_running(self) -> bool:
        """Whether a process is currently running."""
        return self._current_process is not None

    async def run(
        self,
        argv: Sequence[str],
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        on_stdout: LineCallback | None = None,
        on_stderr: LineCallback | None = None,
    ) -> ProcessResult:
        """Run command with output capture and timeout.

        Args:
            argv: Executable and arguments
            cwd: Working directory
            env: Full environment for the child (inherits when None)
            timeout: Timeout in seconds (None for no limit)
            on_stdout: Called with every stdout line
            on_stderr: Called with every stderr line

        Returns:
            Process result

        Raises:
            FileNotFoundError: If the executable does not exist
            asyncio.CancelledError: If cancelled
            asyncio.TimeoutError: If timeout exceeded
        """
        self._cancel_requested = False
        self._current_process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )

        try:
            stdout_lines: list[str] = []
            stderr_lines: list[str] = []

            async def read_stream(
                stream: asyncio.StreamReader | None,
                lines: list[str],
                callback: LineCallback | None,
            ) -> None:
                if stream is None:
                    return
                retained = 0
                while True:
                    try:
                        raw, truncated = await asyncio.wait_for(read_line(stream), timeout=1.0)
                    except asyncio.TimeoutError:
                        if self._cancel_requested:
                            raise asyncio.CancelledError()
                        continue
                    if not raw:
                        break
                    line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                    if truncated or len(line) > MAX_OUTPUT_LINE:
                        line = line[:MAX_OUTPUT_LINE] + "...[truncated]"
                    if callback is not None:
                        callback(line)
                    lines.append(line)
                    retained += len(line) + 1
                    # Drop old lines if buffer too large
                    while retained > MAX_OUTPUT_BYTES and lines:
                        retained -= len(lines.pop(0)) + 1

            readers = [
                asyncio.ensure_future(read_stream(self._current_process.stdout, stdout_lines, on_stdout)),
                asyncio.ensure_future(read_stream(self._current_process.stderr, stderr_lines, on_stderr)),
            ]
            try:
                await asyncio.wait_for(asyncio.gather(*readers), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Process timeout after {timeout}s: {argv[0]}")
                await self._terminate(readers)
                raise
            except (asyncio.CancelledError, Exception):
                await self._terminate(readers)
                raise

            await self._current_process.wait()
            if self._cancel_requested:
                raise asyncio.CancelledError()
            exit_code = self._current_process.returncode or 0

            return ProcessResult(
                exit_code=exit_code,
                stdout="\n".join(stdout_lines),
                stderr="\n".join(stderr_lines),
            )

        finally:
            self._current_process = None

    def _kill(self) -> None:
        if self._current_process is None:
            return
        try:
            self._current_process.kill()
        except ProcessLookupError:
            pass

    async def _terminate(self, readers: Sequence[asyncio.Future] = ()) -> None:
        """Stop the output readers, kill the current process and wait for it to exit."""
        for reader in readers:
            reader.cancel()
        process = self._current_process
        if process is None:
            return
        self._kill()
        try:
            await asyncio.wait_for(process.wait(), timeout=KILL_WAIT_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Process {process.pid} did not exit after kill")

    def cancel(self) -> bool:
        """Kill the running process.

        Returns:
            True if a process was running
        """
        if self._current_process is None:
            return False
        self._cancel_requested = True
        self._kill()
        return True
