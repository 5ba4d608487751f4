"""Error handling module for the lyricsnap export pipeline.

Provides the export error hierarchy, error context capture and the bounded
retry policy used by frame capture.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Error Classification
# =============================================================================

class ExportError(Exception):
    """Base exception for all export errors.

    ``last_progress`` is filled in by the exporter with the last
    ``ExportProgress`` emitted before the failure.
    """

    def __init__(self, message: str, context: Optional["ErrorContext"] = None):
        super().__init__(message)
        self.context = context
        self.last_progress = None


class ValidationError(ExportError):
    """Malformed export request (duration, fps, resolution, paths)."""
    pass


class CaptureError(ExportError):
    """Render engine failed to produce a valid frame."""
    pass


class ContinuityError(ExportError):
    """Internal frame/batch partitioning inconsistency. Never retried."""
    pass


class EncodeError(ExportError):
    """Encoder backend failure for a batch."""
    pass


class FFmpegNotFoundError(EncodeError):
    """The ffmpeg binary could not be located."""
    pass


class ComposeError(ExportError):
    """Final concatenation or audio muxing failure."""
    pass


class CancelledError(ExportError):
    """Cooperative cancellation was honored."""
    pass


class ExportInProgressError(ExportError):
    """Another export is already running on this exporter."""
    pass


class SessionStateError(ExportError):
    """Illegal export session state transition."""
    pass


class DiskSpaceError(ExportError):
    """Not enough free disk space to stage the export."""
    pass


# =============================================================================
# Error Context
# =============================================================================

@dataclass
class ErrorContext:
    """Detailed context for debugging export failures."""
    stage: str
    operation: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    frame_index: Optional[int] = None
    batch_index: Optional[int] = None
    output_file: Optional[str] = None
    command: Optional[List[str]] = None
    stderr: Optional[str] = None
    return_code: Optional[int] = None
    additional_info: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "stage": self.stage,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "frame_index": self.frame_index,
            "batch_index": self.batch_index,
            "output_file": self.output_file,
            "command": self.command,
            "stderr": self.stderr,
            "return_code": self.return_code,
            "additional_info": self.additional_info,
        }

    def __str__(self) -> str:
        """Human-readable error context."""
        lines = [
            f"Stage: {self.stage}",
            f"Operation: {self.operation}",
            f"Timestamp: {self.timestamp}",
        ]

        if self.frame_index is not None:
            lines.append(f"Frame: {self.frame_index}")
        if self.batch_index is not None:
            lines.append(f"Batch: {self.batch_index}")
        if self.output_file:
            lines.append(f"Output: {self.output_file}")
        if self.command:
            lines.append(f"Command: {' '.join(self.command)}")
        if self.return_code is not None:
            lines.append(f"Return code: {self.return_code}")
        if self.stderr:
            lines.append(f"Stderr: {self.stderr[-500:]}")

        return "\n".join(lines)


def create_error_context(
    stage: str,
    operation: str,
    frame_index: Optional[int] = None,
    batch_index: Optional[int] = None,
    output_file: Optional[Path] = None,
    command: Optional[List[str]] = None,
    stderr: Optional[str] = None,
    return_code: Optional[int] = None,
    **additional_info: Any
) -> ErrorContext:
    """Create an error context, stringifying paths."""
    return ErrorContext(
        stage=stage,
        operation=operation,
        frame_index=frame_index,
        batch_index=batch_index,
        output_file=str(output_file) if output_file else None,
        command=[str(part) for part in command] if command else None,
        stderr=stderr,
        return_code=return_code,
        additional_info=additional_info,
    )


# =============================================================================
# Retry Logic
# =============================================================================

@dataclass
class RetryPolicy:
    """Bounded retry without backoff.

    Capture failures come from deterministic render state rather than a
    flaky network, so attempts are repeated immediately.
    """
    max_attempts: int = 3
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    give_up_on: Tuple[Type[BaseException], ...] = (ExportError,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Whether ``error`` raised on 1-based ``attempt`` deserves another try."""
        if attempt >= self.max_attempts:
            return False
        if isinstance(error, self.give_up_on):
            return False
        return isinstance(error, self.retry_on)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation_name: str = "operation",
    on_retry: Optional[Callable[[BaseException, int], None]] = None,
) -> T:
    """Await ``operation`` until it succeeds or ``policy`` gives up.

    The final failure is re-raised unchanged; callers wrap it into their
    stage-specific error.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not policy.should_retry(e, attempt):
                if attempt > 1:
                    logger.error(
                        f"{operation_name}: giving up after {attempt} attempts: {e}"
                    )
                raise
            logger.warning(
                f"{operation_name}: attempt {attempt}/{policy.max_attempts} failed: {e}. "
                "Retrying..."
            )
            if on_retry:
                on_retry(e, attempt)
