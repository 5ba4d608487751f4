"""Frame capture: seek-and-snap every frame of an export.

Frames are captured strictly in index order through a single-permit gate.
For each frame the engine is paused, seeked to the frame timestamp,
asked for pixels, and the validated buffer is persisted before the next
frame starts.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

from .engine import RenderEngine
from .errors import CaptureError, ExportError, RetryPolicy, create_error_context, retry_async
from .gate import ConcurrencyGate
from .metrics import ExportMetrics
from .session import ExportSession
from .types import ExportSpec, FrameTask
from .validators import validate_frame_buffer

logger = logging.getLogger(__name__)

FrameProgressCallback = Callable[[int, int], None]


class FrameCaptureOrchestrator:
    """Drives a ``RenderEngine`` through every frame timestamp of a session."""

    def __init__(
        self,
        engine: RenderEngine,
        gate: Optional[ConcurrencyGate] = None,
        capture_attempts: int = 3,
        capture_timeout: Optional[float] = 30.0,
        reclaim_interval: int = 50,
        metrics: Optional[ExportMetrics] = None,
    ):
        self.engine = engine
        self.gate = gate or ConcurrencyGate(1, name="capture")
        self.retry_policy = RetryPolicy(max_attempts=capture_attempts)
        self.capture_timeout = capture_timeout
        self.reclaim_interval = reclaim_interval
        self.metrics = metrics

    async def capture_all(
        self,
        session: ExportSession,
        on_progress: Optional[FrameProgressCallback] = None,
    ) -> int:
        """Capture frames ``0..total-1`` into the session frame store.

        Returns:
            Number of frames captured

        Raises:
            CancelledError: If the session is cancelled between frames
            CaptureError: If a frame cannot be captured
        """
        spec = session.spec
        total = session.total_frames
        logger.info(f"Capturing {total} frames at {spec.fps:g} fps ({spec.width}x{spec.height})")

        for index in range(total):
            session.token.raise_if_cancelled(f"frame {index}")

            if index > 0 and index % self.reclaim_interval == 0:
                self._reclaim(index)

            task = FrameTask(index=index, timestamp_ms=spec.frame_timestamp(index))
            started = time.perf_counter()
            async with self.gate.permit(session.token):
                await self._capture_frame(task, spec, session)

            if self.metrics:
                self.metrics.record_frame((time.perf_counter() - started) * 1000)
            if on_progress:
                on_progress(index + 1, total)

        logger.info(f"Captured {total} frames")
        return total

    async def _capture_frame(self, task: FrameTask, spec: ExportSpec, session: ExportSession) -> None:
        async def attempt() -> bytes:
            self.engine.pause()
            return await asyncio.wait_for(self._render(task.timestamp_ms, spec), self.capture_timeout)

        try:
            task.buffer = await retry_async(
                attempt,
                self.retry_policy,
                operation_name=f"capture frame {task.index}",
                on_retry=self._on_retry,
            )
        except ExportError:
            raise
        except Exception as e:
            reason = "timed out" if isinstance(e, asyncio.TimeoutError) else str(e)
            raise CaptureError(
                f"Failed to capture frame {task.index} at {task.timestamp_ms:.3f}ms "
                f"after {self.retry_policy.max_attempts} attempts: {reason}",
                context=create_error_context(
                    stage="capture",
                    operation="capture_frame",
                    frame_index=task.index,
                    timestamp_ms=task.timestamp_ms,
                ),
            ) from e

        check = validate_frame_buffer(task.buffer, spec.width, spec.height, task.index)
        if not check.is_valid:
            raise CaptureError(
                f"Invalid frame {task.index} at {task.timestamp_ms:.3f}ms: {check.describe()}",
                context=create_error_context(
                    stage="capture",
                    operation="validate_frame",
                    frame_index=task.index,
                    expected_bytes=check.expected_bytes,
                    actual_bytes=check.actual_bytes,
                ),
            )

        try:
            task.path = await session.frame_store.write(task.index, task.buffer)
        except (OSError, ValueError) as e:
            raise CaptureError(
                f"Failed to save frame {task.index} to {session.frames_dir}: {e}",
                context=create_error_context(
                    stage="capture",
                    operation="write_frame",
                    frame_index=task.index,
                    timestamp_ms=task.timestamp_ms,
                ),
            ) from e
        task.buffer = None

    async def _render(self, timestamp_ms: float, spec: ExportSpec) -> bytes:
        await self.engine.seek_to(timestamp_ms)
        return await self.engine.capture_pixels(spec.width, spec.height, spec.include_overlays)

    def _on_retry(self, error: BaseException, attempt: int) -> None:
        if self.metrics:
            self.metrics.record_retry()

    def _reclaim(self, index: int) -> None:
        logger.debug(f"Reclaiming render resources at frame {index}")
        try:
            self.engine.reclaim_resources()
        except Exception as e:
            logger.warning(f"Render engine failed to reclaim resources at frame {index}: {e}")
            return
        if self.metrics:
            self.metrics.record_reclaim()
