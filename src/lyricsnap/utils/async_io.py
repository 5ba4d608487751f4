"""Async I/O helpers for the export pipeline.

- Run external tools (ffmpeg) without blocking the event loop
- Offload blocking file writes (PNG encoding) to a thread pool
"""
import asyncio
import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Thread pool for blocking I/O operations
_io_executor: Optional[ThreadPoolExecutor] = None


def get_io_executor(max_workers: int = 4) -> ThreadPoolExecutor:
    """Get or create the shared I/O thread pool executor."""
    global _io_executor
    if _io_executor is None:
        _io_executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="lyricsnap_io")
    return _io_executor


def shutdown_executor() -> None:
    """Shutdown the I/O executor gracefully."""
    global _io_executor
    if _io_executor:
        _io_executor.shutdown(wait=True)
        _io_executor = None


async def run_blocking(func: Callable[..., T], *args) -> T:
    """Run a blocking callable on the I/O executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(get_io_executor(), func, *args)


@dataclass
class ProcessResult:
    """Completed subprocess."""
    command: List[str]
    returncode: int
    stdout: str
    stderr: str


class SubprocessTimeout(Exception):
    """Subprocess exceeded its time budget and was killed."""

    def __init__(self, command: List[str], timeout: float, stderr: str = ""):
        super().__init__(f"Command timed out after {timeout}s: {' '.join(command)}")
        self.command = command
        self.timeout = timeout
        self.stderr = stderr


class AsyncSubprocess:
    """Async subprocess execution for external tools.

    The child process is killed when the timeout expires or when the
    awaiting task is cancelled, so an abandoned encode never lingers.

    Example:
        >>> runner = AsyncSubprocess(timeout=600)
        >>> result = await runner.run_checked(["ffmpeg", "-version"])
    """

    def __init__(self, timeout: Optional[float] = 3600.0):
        self.timeout = timeout

    async def run(
        self,
        cmd: List[str],
        timeout: Optional[float] = None,
        cwd: Optional[Path] = None,
    ) -> ProcessResult:
        """Run ``cmd`` and collect its output.

        Raises:
            SubprocessTimeout: If the command runs longer than the timeout
            FileNotFoundError: If the executable does not exist
        """
        timeout = timeout if timeout is not None else self.timeout
        cmd = [str(part) for part in cmd]

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            raise SubprocessTimeout(cmd, timeout) from None
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        return ProcessResult(
            command=cmd,
            returncode=process.returncode or 0,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    async def run_checked(
        self,
        cmd: List[str],
        timeout: Optional[float] = None,
        cwd: Optional[Path] = None,
    ) -> ProcessResult:
        """Run subprocess and raise on non-zero exit.

        Raises:
            subprocess.CalledProcessError: On non-zero exit
        """
        result = await self.run(cmd, timeout, cwd)
        if result.returncode != 0:
            raise subprocess.CalledProcessError(
                result.returncode, result.command, result.stdout, result.stderr
            )
        return result

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
