"""Export session lifecycle.

An ``ExportSession`` owns one working directory::

    <base_dir>/session_<id>/
        frames/     staged PNG frames
        batches/    encoded segments

``SessionManager.open()`` creates it and guarantees it is removed whatever
way the export ends, recording the terminal state.
"""
import asyncio
import atexit
import logging
import shutil
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Set

from .cancellation import CancellationToken
from .errors import CancelledError, SessionStateError
from .frame_store import FrameStore
from .types import SEGMENT_FILENAME_PATTERN, ExportSpec, SessionState
from .utils.disk import get_directory_size, get_disk_usage

logger = logging.getLogger(__name__)

SESSION_DIR_PREFIX = "session_"

_TRANSITIONS: Dict[SessionState, Set[SessionState]] = {
    SessionState.PREPARING: {SessionState.CAPTURING},
    SessionState.CAPTURING: {SessionState.ENCODING},
    SessionState.ENCODING: {SessionState.COMPOSING},
    SessionState.COMPOSING: {SessionState.FINALIZING},
    SessionState.FINALIZING: {SessionState.COMPLETED},
}

# Working directories of sessions still running in this process.
_live_dirs: Set[Path] = set()
_live_lock = threading.Lock()


def _remove_live_sessions() -> None:
    with _live_lock:
        dirs = list(_live_dirs)
        _live_dirs.clear()
    for path in dirs:
        shutil.rmtree(path, ignore_errors=True)


atexit.register(_remove_live_sessions)


class ExportSession:
    """State of one export from PREPARING to a terminal state."""

    def __init__(
        self,
        spec: ExportSpec,
        working_dir: Path,
        session_id: str,
        png_compression_level: int = 1,
        token: Optional[CancellationToken] = None,
    ):
        self.session_id = session_id
        self.spec = spec
        self.working_dir = working_dir
        self.frames_dir = working_dir / "frames"
        self.batches_dir = working_dir / "batches"
        self.total_frames = spec.total_frames
        self.token = token or CancellationToken()
        self.created_at = datetime.now()
        self.frame_store = FrameStore(
            self.frames_dir,
            spec.width,
            spec.height,
            compression_level=png_compression_level,
        )
        self._state = SessionState.PREPARING

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def transition(self, new_state: SessionState) -> None:
        """Advance the state machine.

        CANCELLED and FAILED are reachable from every non-terminal state.

        Raises:
            SessionStateError: On an illegal transition
        """
        current = self._state
        if current.is_terminal:
            raise SessionStateError(
                f"Session {self.session_id} is already {current.value}; "
                f"cannot move to {new_state.value}"
            )
        allowed = _TRANSITIONS.get(current, set())
        if new_state not in allowed and new_state not in (SessionState.CANCELLED, SessionState.FAILED):
            raise SessionStateError(
                f"Illegal session transition {current.value} -> {new_state.value}"
            )
        logger.debug(f"Session {self.session_id}: {current.value} -> {new_state.value}")
        self._state = new_state

    def cancel(self) -> bool:
        """Request cooperative cancellation. Safe from any thread."""
        return self.token.cancel()

    def segment_path(self, batch_index: int) -> Path:
        return self.batches_dir / (SEGMENT_FILENAME_PATTERN % batch_index)

    def __repr__(self) -> str:
        return f"ExportSession(id={self.session_id!r}, state={self._state.value})"


class SessionManager:
    """Creates, tracks and tears down export sessions under ``base_dir``."""

    def __init__(self, base_dir: Path, png_compression_level: int = 1):
        self.base_dir = Path(base_dir)
        self.png_compression_level = png_compression_level
        self._sessions: Dict[str, ExportSession] = {}

    @property
    def active_sessions(self) -> Dict[str, ExportSession]:
        return dict(self._sessions)

    def create(self, spec: ExportSpec, token: Optional[CancellationToken] = None) -> ExportSession:
        """Allocate a session and its working directory."""
        session_id = uuid.uuid4().hex
        working_dir = self.base_dir / f"{SESSION_DIR_PREFIX}{session_id}"
        session = ExportSession(
            spec, working_dir, session_id, self.png_compression_level, token=token
        )

        session.frames_dir.mkdir(parents=True)
        session.batches_dir.mkdir()
        with _live_lock:
            _live_dirs.add(working_dir)

        self._sessions[session_id] = session
        logger.info(f"Opened export session {session_id} at {working_dir}")
        return session

    def destroy(self, session: ExportSession, final_state: SessionState) -> None:
        """Remove the session directory and record ``final_state``.

        The directory is removed before the state is recorded so a session
        is never observed as terminal with files still on disk.
        """
        self._sessions.pop(session.session_id, None)
        with _live_lock:
            _live_dirs.discard(session.working_dir)

        if session.working_dir.exists():
            try:
                shutil.rmtree(session.working_dir)
            except OSError as e:
                logger.warning(f"Could not remove session directory {session.working_dir}: {e}")

        if not session.state.is_terminal:
            session.transition(final_state)
        logger.info(f"Closed export session {session.session_id} ({session.state.value})")

    @contextmanager
    def open(
        self, spec: ExportSpec, token: Optional[CancellationToken] = None
    ) -> Iterator[ExportSession]:
        """Run an export inside a session that is always cleaned up.

        Terminal state: CANCELLED for cancellation, FAILED for any other
        exception, COMPLETED otherwise.
        """
        session = self.create(spec, token)
        final_state = SessionState.FAILED
        try:
            yield session
            final_state = SessionState.COMPLETED
        except (CancelledError, asyncio.CancelledError):
            final_state = SessionState.CANCELLED
            raise
        finally:
            self.destroy(session, final_state)

    def cleanup_orphaned_sessions(self, max_age_hours: float = 24.0) -> int:
        """Remove session directories left behind by crashed processes.

        Directories of sessions live in this process are never touched.

        Returns:
            Number of directories removed
        """
        if not self.base_dir.is_dir():
            return 0

        cutoff = time.time() - max_age_hours * 3600
        with _live_lock:
            live = set(_live_dirs)

        removed = 0
        for path in self.base_dir.glob(f"{SESSION_DIR_PREFIX}*"):
            if not path.is_dir() or path in live:
                continue
            try:
                if path.stat().st_mtime > cutoff:
                    continue
                shutil.rmtree(path)
                removed += 1
                logger.info(f"Removed orphaned export session {path.name}")
            except OSError as e:
                logger.warning(f"Could not remove orphaned session {path}: {e}")
        return removed

    def storage_stats(self, session: ExportSession) -> Dict[str, Any]:
        """Disk usage of a live session's working directory."""
        frame_files = len(list(session.frames_dir.glob("*.png"))) if session.frames_dir.exists() else 0
        segment_files = len(list(session.batches_dir.glob("*.mp4"))) if session.batches_dir.exists() else 0
        frames_bytes = get_directory_size(session.frames_dir) if session.frames_dir.exists() else 0
        batches_bytes = get_directory_size(session.batches_dir) if session.batches_dir.exists() else 0
        return {
            "session_id": session.session_id,
            "frame_files": frame_files,
            "segment_files": segment_files,
            "frames_bytes": frames_bytes,
            "batches_bytes": batches_bytes,
            "total_bytes": frames_bytes + batches_bytes,
            "free_bytes": get_disk_usage(self.base_dir).free_bytes,
        }

    def get(self, session_id: str) -> Optional[ExportSession]:
        return self._sessions.get(session_id)
