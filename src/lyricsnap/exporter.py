"""Video export facade.

``VideoExporter`` runs one export at a time through the pipeline:

    validate -> open session -> capture -> encode batches -> compose -> finalize

Example:
    >>> exporter = VideoExporter(engine)
    >>> output = await exporter.start(spec, on_progress=print)
"""
import asyncio
import logging
import math
import threading
import time
from pathlib import Path
from typing import Optional

from .batching import BatchEncoderCoordinator, partition_batches, verify_partition
from .cancellation import CancellationToken
from .capture import FrameCaptureOrchestrator
from .composition import CompositionStage
from .config import ExportConfig
from .encoder import EncoderService, FFmpegEncoder
from .engine import RenderEngine
from .errors import DiskSpaceError, ExportError, ExportInProgressError, create_error_context
from .gate import ConcurrencyGate
from .metrics import ExportMetrics
from .progress import ProgressCallback, ProgressReporter
from .session import ExportSession, SessionManager
from .types import ExportEstimate, ExportPhase, ExportProgress, ExportSpec, SessionState
from .utils.disk import estimate_staging_bytes, get_disk_usage
from .utils.logging import get_logger
from .validators import validate_export_spec

logger = logging.getLogger(__name__)
log = get_logger("exporter")

ORPHAN_SWEEP_INTERVAL = 30 * 60  # seconds
ORPHAN_MAX_AGE_HOURS = 24.0


class VideoExporter:
    """Deterministic frame-by-frame video exporter.

    One export runs at a time per instance. ``cancel()`` may be called from
    any thread; the running export stops at the next frame or batch
    boundary, removes its working directory and raises ``CancelledError``.
    """

    def __init__(
        self,
        engine: RenderEngine,
        encoder: Optional[EncoderService] = None,
        config: Optional[ExportConfig] = None,
    ):
        self.config = config or ExportConfig()
        self.engine = engine
        self.encoder = encoder or FFmpegEncoder(self.config.ffmpeg_path)
        self.sessions = SessionManager(
            self.config.base_dir, png_compression_level=self.config.png_compression_level
        )
        self.metrics: Optional[ExportMetrics] = None

        self._lock = threading.Lock()
        self._running = False
        self._token: Optional[CancellationToken] = None
        self._session: Optional[ExportSession] = None
        self._reporter: Optional[ProgressReporter] = None
        self._last_sweep = 0.0

    @property
    def last_progress(self) -> Optional[ExportProgress]:
        return self._reporter.last if self._reporter else None

    @property
    def session(self) -> Optional[ExportSession]:
        """Session of the running export, if any."""
        return self._session

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def cancel(self) -> bool:
        """Request cancellation of the running export.

        Returns:
            True if a running export was asked to stop
        """
        with self._lock:
            token = self._token if self._running else None
        if token is None:
            return False
        if token.cancel():
            log.info("Export cancellation requested")
        return True

    async def start(self, spec: ExportSpec, on_progress: Optional[ProgressCallback] = None) -> Path:
        """Run a complete export and return the output path.

        Raises:
            ExportInProgressError: If an export is already running
            ValidationError: If ``spec`` is malformed
            DiskSpaceError: If the staging directory lacks space
            CaptureError, ContinuityError, EncodeError, ComposeError: On
                pipeline failure
            CancelledError: If ``cancel()`` was honored
        """
        with self._lock:
            if self._running:
                raise ExportInProgressError("An export is already running on this exporter")
            self._running = True
            self._token = CancellationToken()
            token = self._token

        reporter = ProgressReporter(on_progress)
        self._reporter = reporter
        self.metrics = None
        try:
            return await self._run(spec, token, reporter)
        except ExportError as e:
            e.last_progress = reporter.last
            if self.metrics:
                self.metrics.record_error(e, e.context.to_dict() if e.context else None)
            raise
        finally:
            if self.metrics:
                self.metrics.finish()
            with self._lock:
                self._running = False
                self._token = None
                self._session = None

    async def _run(self, spec: ExportSpec, token: CancellationToken, reporter: ProgressReporter) -> Path:
        config = self.config
        reporter.report(ExportPhase.PREPARING, message="Validating export")
        validate_export_spec(spec)

        total = spec.total_frames
        self.metrics = metrics = ExportMetrics(total_frames=total)
        self._sweep_orphans()
        if config.check_disk_space:
            self._check_disk_space(spec)

        token.raise_if_cancelled("preparing")
        log.info(
            "Starting export",
            output=str(spec.output_path),
            frames=total,
            fps=spec.fps,
            resolution=f"{spec.width}x{spec.height}",
        )

        with self.sessions.open(spec, token) as session:
            self._session = session
            reporter.report(ExportPhase.PREPARING, 1, 1, message="Session ready")
            token.raise_if_cancelled("preparing")

            # Capture
            session.transition(SessionState.CAPTURING)
            phase_started = time.perf_counter()
            reporter.report(ExportPhase.CAPTURING, 0, total, message="Capturing frames")
            capture = FrameCaptureOrchestrator(
                self.engine,
                gate=ConcurrencyGate(1, name="capture"),
                capture_attempts=config.capture_attempts,
                capture_timeout=config.capture_timeout,
                reclaim_interval=config.reclaim_interval,
                metrics=metrics,
            )
            await capture.capture_all(
                session,
                on_progress=lambda done, n: reporter.report(
                    ExportPhase.CAPTURING, done, n, message=f"Captured frame {done}/{n}"
                ),
            )
            metrics.record_phase("capturing", time.perf_counter() - phase_started)
            token.raise_if_cancelled("encoding")

            # Encode
            session.transition(SessionState.ENCODING)
            phase_started = time.perf_counter()
            batches = partition_batches(total, spec.batch_size, session.batches_dir)
            verify_partition(batches, total)
            metrics.total_batches = len(batches)
            reporter.report(ExportPhase.ENCODING, 0, len(batches), message="Encoding batches")
            coordinator = BatchEncoderCoordinator(
                self.encoder,
                gate=ConcurrencyGate(config.encode_concurrency, name="encode"),
                encode_timeout=config.encode_timeout,
                release_frames=config.release_frames_after_encode,
                metrics=metrics,
            )
            segments = await coordinator.encode_all(
                session,
                batches,
                on_progress=lambda done, n: reporter.report(
                    ExportPhase.ENCODING, done, n, message=f"Encoded batch {done}/{n}"
                ),
            )
            metrics.record_phase("encoding", time.perf_counter() - phase_started)
            token.raise_if_cancelled("composing")

            # Compose; not interruptible from here on.
            session.transition(SessionState.COMPOSING)
            phase_started = time.perf_counter()
            reporter.report(ExportPhase.COMPOSING, 0, 1, message="Composing final video")
            output = await CompositionStage(self.encoder, config.compose_timeout).compose(
                segments,
                spec.output_path,
                audio_path=spec.audio_path if spec.include_audio else None,
            )
            metrics.record_phase("composing", time.perf_counter() - phase_started)

            session.transition(SessionState.FINALIZING)

        reporter.report(ExportPhase.FINALIZING, message="Export complete")
        log.info("Export complete", output=str(output), elapsed_s=round(metrics.elapsed_seconds, 2))
        return output

    def estimate(self, spec: ExportSpec) -> ExportEstimate:
        """Resource estimate for ``spec``. Pure apart from validation.

        Raises:
            ValidationError: If ``spec`` is malformed
        """
        validate_export_spec(spec)
        total = spec.total_frames
        bytes_per_frame = spec.bytes_per_frame
        peak_memory = spec.batch_size * bytes_per_frame

        budget = self.config.memory_budget_mb * 1024 * 1024
        fitting = max(1, budget // bytes_per_frame)
        recommended = min(spec.batch_size, fitting)

        notes = []
        if recommended < spec.batch_size:
            notes.append(
                f"Batch of {spec.batch_size} frames needs {peak_memory / 1024 ** 2:.0f} MB; "
                f"{recommended} frames fit the {self.config.memory_budget_mb} MB budget"
            )

        return ExportEstimate(
            total_frames=total,
            bytes_per_frame=bytes_per_frame,
            batch_count=math.ceil(total / spec.batch_size),
            peak_memory_per_batch=peak_memory,
            recommended_batch_size=recommended,
            staging_disk_bytes=estimate_staging_bytes(
                total, bytes_per_frame, self.config.release_frames_after_encode
            ),
            notes=notes,
        )

    def _check_disk_space(self, spec: ExportSpec) -> None:
        required = estimate_staging_bytes(
            spec.total_frames, spec.bytes_per_frame, self.config.release_frames_after_encode
        )
        needed = int(required * self.config.disk_safety_margin)
        free = get_disk_usage(self.config.base_dir).free_bytes
        if free < needed:
            raise DiskSpaceError(
                f"Not enough disk space to stage export: need {needed / 1024 ** 3:.2f} GB, "
                f"have {free / 1024 ** 3:.2f} GB at {self.config.base_dir}",
                context=create_error_context(
                    stage="preparing",
                    operation="disk_check",
                    required_bytes=needed,
                    free_bytes=free,
                ),
            )

    def _sweep_orphans(self) -> None:
        now = time.monotonic()
        if self._last_sweep and now - self._last_sweep < ORPHAN_SWEEP_INTERVAL:
            return
        self._last_sweep = now
        try:
            removed = self.sessions.cleanup_orphaned_sessions(ORPHAN_MAX_AGE_HOURS)
        except OSError as e:
            logger.warning(f"Orphaned session sweep failed: {e}")
            return
        if removed:
            logger.info(f"Removed {removed} orphaned export session(s)")


def export_video(
    spec: ExportSpec,
    engine: RenderEngine,
    encoder: Optional[EncoderService] = None,
    config: Optional[ExportConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> Path:
    """Synchronous convenience wrapper running one export to completion."""
    exporter = VideoExporter(engine, encoder=encoder, config=config)
    return asyncio.run(exporter.start(spec, on_progress=on_progress))
