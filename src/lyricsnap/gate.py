"""FIFO admission gate bounding in-flight export operations.

With one permit the gate serializes frame captures in submission order;
with N permits it bounds concurrent batch encodes. Unlike
``asyncio.Semaphore`` it wakes waiters strictly oldest-first and fails
waiters of a cancelled session instead of leaving them blocked.
"""
import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Deque, Optional

from .cancellation import CancellationToken
from .errors import CancelledError

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    """Strict-ordering counting gate.

    Example:
        >>> gate = ConcurrencyGate(1, name="capture")
        >>> async with gate.permit(token):
        ...     await capture_frame()
    """

    def __init__(self, permits: int, name: str = "gate"):
        if permits < 1:
            raise ValueError("permits must be at least 1")
        self.name = name
        self._permits = permits
        self._available = permits
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def permits(self) -> int:
        return self._permits

    @property
    def available(self) -> int:
        return self._available

    @property
    def in_use(self) -> int:
        return self._permits - self._available

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self, token: Optional[CancellationToken] = None) -> None:
        """Wait for a permit.

        Raises:
            CancelledError: If ``token`` is or becomes cancelled before a
                permit is granted
        """
        if token is not None and token.cancelled:
            raise CancelledError(f"Export cancelled before acquiring {self.name} permit")

        if self._available > 0 and not self.waiting:
            self._available -= 1
            return

        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._waiters.append(waiter)

        def _wake() -> None:
            loop.call_soon_threadsafe(self._fail_waiter, waiter)

        if token is not None:
            token.add_callback(_wake)
        try:
            await waiter
        except BaseException:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # Granted, but the caller is leaving; pass the permit on.
                self.release()
            else:
                self._discard(waiter)
            raise
        finally:
            if token is not None:
                token.remove_callback(_wake)

    def release(self) -> None:
        """Return a permit, handing it to the oldest live waiter if any."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(True)
                return

        if self._available >= self._permits:
            raise RuntimeError(f"{self.name}: release() called more times than acquire()")
        self._available += 1

    @asynccontextmanager
    async def permit(self, token: Optional[CancellationToken] = None) -> AsyncIterator[None]:
        await self.acquire(token)
        try:
            yield
        finally:
            self.release()

    def _fail_waiter(self, waiter: asyncio.Future) -> None:
        if not waiter.done():
            waiter.set_exception(
                CancelledError(f"Export cancelled while waiting for {self.name} permit")
            )

    def _discard(self, waiter: asyncio.Future) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    def __repr__(self) -> str:
        return (
            f"ConcurrencyGate(name={self.name!r}, permits={self._permits}, "
            f"available={self._available}, waiting={self.waiting})"
        )
