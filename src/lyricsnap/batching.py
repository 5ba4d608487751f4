"""Batch partitioning and bounded-concurrency segment encoding."""
import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from .encoder import EncoderService
from .errors import (
    CancelledError,
    ContinuityError,
    EncodeError,
    ExportError,
    create_error_context,
)
from .gate import ConcurrencyGate
from .metrics import ExportMetrics
from .session import ExportSession
from .types import SEGMENT_FILENAME_PATTERN, Batch, FrameSequence

logger = logging.getLogger(__name__)

BatchProgressCallback = Callable[[int, int], None]


def partition_batches(
    total_frames: int,
    batch_size: int,
    batches_dir: Optional[Path] = None,
) -> List[Batch]:
    """Split ``[0, total_frames)`` into consecutive batches of ``batch_size``.

    The last batch holds the remainder. With ``batches_dir`` each batch is
    assigned its segment path.

    >>> [(b.start, b.end) for b in partition_batches(300, 150)]
    [(0, 150), (150, 300)]
    """
    if total_frames < 0:
        raise ValueError("total_frames must not be negative")
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    batches = []
    for index, start in enumerate(range(0, total_frames, batch_size)):
        segment = batches_dir / (SEGMENT_FILENAME_PATTERN % index) if batches_dir else None
        batches.append(Batch(index, start, min(start + batch_size, total_frames), segment))
    return batches


def verify_partition(batches: Sequence[Batch], total_frames: int) -> None:
    """Check batches are indexed in order and tile ``[0, total_frames)`` exactly.

    Raises:
        ContinuityError: On any gap, overlap, empty batch or index mismatch
    """
    expected_start = 0
    for position, batch in enumerate(batches):
        if batch.index != position:
            raise ContinuityError(f"Batch at position {position} has index {batch.index}")
        if batch.start != expected_start:
            raise ContinuityError(
                f"Batch {batch.index} starts at frame {batch.start}, expected {expected_start}"
            )
        if batch.end <= batch.start:
            raise ContinuityError(f"Batch {batch.index} is empty: [{batch.start}, {batch.end})")
        expected_start = batch.end

    if expected_start != total_frames:
        raise ContinuityError(
            f"Batches cover {expected_start} frames, expected {total_frames}"
        )


class BatchEncoderCoordinator:
    """Encodes a session's batches with at most N concurrent encodes.

    Results are collected by batch index, so the returned segment list is
    in frame order whatever order encodes finish in.
    """

    def __init__(
        self,
        encoder: EncoderService,
        gate: Optional[ConcurrencyGate] = None,
        encode_concurrency: int = 2,
        encode_timeout: Optional[float] = 600.0,
        release_frames: bool = True,
        metrics: Optional[ExportMetrics] = None,
    ):
        self.encoder = encoder
        self.gate = gate or ConcurrencyGate(encode_concurrency, name="encode")
        self.encode_timeout = encode_timeout
        self.release_frames = release_frames
        self.metrics = metrics

    async def encode_all(
        self,
        session: ExportSession,
        batches: Sequence[Batch],
        on_progress: Optional[BatchProgressCallback] = None,
    ) -> List[Path]:
        """Encode every batch and return segment paths in batch order.

        Raises:
            ContinuityError: If batches are not contiguous or frames are missing
            EncodeError: The first encode failure; other encodes are cancelled
            CancelledError: If the session was cancelled; running encodes
                finish first
        """
        total = len(batches)
        results: Dict[int, Path] = {}
        tasks: Set[asyncio.Task] = set()

        try:
            for position, batch in enumerate(batches):
                if position > 0 and batch.start != batches[position - 1].end:
                    raise ContinuityError(
                        f"Batch {batch.index} starts at frame {batch.start} but batch "
                        f"{batches[position - 1].index} ends at {batches[position - 1].end}",
                        context=create_error_context(
                            stage="encoding", operation="submit_batch", batch_index=batch.index
                        ),
                    )
                frames = session.frame_store.sequence(batch.start, batch.end)
                tasks.add(asyncio.create_task(
                    self._encode_batch(session, batch, frames),
                    name=f"encode-batch-{batch.index}",
                ))

            await self._collect(tasks, results, total, on_progress)
        except BaseException:
            await self._abort(tasks)
            raise

        if session.cancelled:
            raise CancelledError(
                f"Export cancelled during encoding ({len(results)}/{total} batches done)"
            )

        missing = [b.index for b in batches if b.index not in results]
        if missing:
            raise ContinuityError(f"Batches {missing} produced no segment")
        return [results[b.index] for b in batches]

    async def _collect(
        self,
        tasks: Set[asyncio.Task],
        results: Dict[int, Path],
        total: int,
        on_progress: Optional[BatchProgressCallback],
    ) -> None:
        pending = set(tasks)
        first_error: Optional[BaseException] = None
        cancelled: Optional[CancelledError] = None

        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if task.cancelled():
                    continue
                error = task.exception()
                if error is None:
                    batch, path = task.result()
                    results[batch.index] = path
                    if on_progress:
                        on_progress(len(results), total)
                elif isinstance(error, CancelledError):
                    cancelled = cancelled or error
                elif first_error is None:
                    first_error = error
                    logger.error(f"Batch encode failed, cancelling {len(pending)} others: {error}")
                    for other in pending:
                        other.cancel()

        if first_error is not None:
            raise first_error
        if cancelled is not None:
            raise cancelled

    async def _encode_batch(
        self,
        session: ExportSession,
        batch: Batch,
        frames: FrameSequence,
    ) -> Tuple[Batch, Path]:
        spec = session.spec
        segment_path = batch.segment_path or session.segment_path(batch.index)

        async with self.gate.permit(session.token):
            logger.debug(f"Encoding batch {batch.index}: frames [{batch.start}, {batch.end})")
            started = time.perf_counter()
            try:
                path = await asyncio.wait_for(
                    self.encoder.encode_image_sequence(
                        frames,
                        spec.fps,
                        spec.width,
                        spec.height,
                        spec.quality,
                        segment_path,
                        timeout=self.encode_timeout,
                    ),
                    self.encode_timeout,
                )
            except ExportError:
                raise
            except asyncio.TimeoutError as e:
                raise EncodeError(
                    f"Batch {batch.index} timed out after {self.encode_timeout}s",
                    context=create_error_context(
                        stage="encoding",
                        operation="encode_batch",
                        batch_index=batch.index,
                        output_file=segment_path,
                    ),
                ) from e
            except Exception as e:
                raise EncodeError(
                    f"Batch {batch.index} failed: {e}",
                    context=create_error_context(
                        stage="encoding",
                        operation="encode_batch",
                        batch_index=batch.index,
                        output_file=segment_path,
                    ),
                ) from e
            elapsed = time.perf_counter() - started

        batch.segment_path = path
        if self.release_frames:
            session.frame_store.release(batch.start, batch.end)
        if self.metrics:
            self.metrics.record_batch(batch.index, elapsed)
        logger.debug(f"Batch {batch.index} encoded in {elapsed:.2f}s")
        return batch, path

    @staticmethod
    async def _abort(tasks: Set[asyncio.Task]) -> None:
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
