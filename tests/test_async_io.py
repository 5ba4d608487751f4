"""Tests for async subprocess and blocking I/O helpers."""
import asyncio
import subprocess
import sys
import time

import pytest

from lyricsnap.utils.async_io import (
    AsyncSubprocess,
    SubprocessTimeout,
    get_io_executor,
    run_blocking,
)


class TestRunBlocking:
    def test_returns_result(self):
        assert asyncio.run(run_blocking(sum, [1, 2, 3])) == 6

    def test_shared_executor(self):
        assert get_io_executor() is get_io_executor()

    def test_exception_propagates(self):
        def fail():
            raise OSError("disk full")

        with pytest.raises(OSError, match="disk full"):
            asyncio.run(run_blocking(fail))


class TestAsyncSubprocess:
    """Tests for AsyncSubprocess."""

    def test_captures_output(self):
        cmd = [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"]
        result = asyncio.run(AsyncSubprocess().run(cmd))

        assert result.returncode == 0
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"

    def test_run_checked_raises_on_failure(self):
        cmd = [sys.executable, "-c", "import sys; sys.exit(3)"]
        with pytest.raises(subprocess.CalledProcessError) as exc_info:
            asyncio.run(AsyncSubprocess().run_checked(cmd))
        assert exc_info.value.returncode == 3

    def test_timeout_kills_process(self):
        cmd = [sys.executable, "-c", "import time; time.sleep(30)"]
        started = time.monotonic()

        with pytest.raises(SubprocessTimeout):
            asyncio.run(AsyncSubprocess(timeout=0.5).run(cmd))
        assert time.monotonic() - started < 10

    def test_task_cancel_kills_process(self):
        cmd = [sys.executable, "-c", "import time; time.sleep(30)"]

        async def scenario():
            task = asyncio.create_task(AsyncSubprocess(timeout=None).run(cmd))
            await asyncio.sleep(0.3)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        started = time.monotonic()
        asyncio.run(scenario())
        assert time.monotonic() - started < 10

    def test_missing_executable(self):
        with pytest.raises(FileNotFoundError):
            asyncio.run(AsyncSubprocess().run(["definitely-not-a-real-binary-xyz"]))
