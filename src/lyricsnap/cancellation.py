"""Thread-safe cooperative cancellation flag."""
import logging
import threading
from typing import Callable, List

from .errors import CancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancellation flag shared by every component of one export session.

    ``cancel()`` may be called from any thread (typically the UI thread).
    Components poll ``cancelled`` at frame and batch boundaries; blocking
    waiters register a callback to be woken.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Flip the flag. Returns False if it was already set."""
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            suffix = f" at {where}" if where else ""
            raise CancelledError(f"Export cancelled{suffix}")
