"""Export metrics collection.

Records per-frame capture timings, retries and per-batch encode timings
for one export session.
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

logger = logging.getLogger(__name__)


def _mean(values: List[float]) -> float:
    if not values:
        return 0.0
    return float(np.mean(values))


def _percentile(values: List[float], q: float) -> float:
    if not values:
        return 0.0
    return float(np.percentile(values, q))


@dataclass
class ExportMetrics:
    """Timing and failure metrics for one export."""

    # Timing
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    # Frame counts
    total_frames: int = 0
    captured_frames: int = 0
    capture_times_ms: List[float] = field(default_factory=list)

    # Batches
    total_batches: int = 0
    encoded_batches: int = 0
    batch_times_s: Dict[int, float] = field(default_factory=dict)

    # Phases
    phase_seconds: Dict[str, float] = field(default_factory=dict)

    # Errors
    retry_count: int = 0
    reclaim_count: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        if self.start_time is None:
            self.start_time = datetime.now()

    @property
    def elapsed_seconds(self) -> float:
        """Get elapsed time in seconds."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    @property
    def avg_capture_ms(self) -> float:
        return _mean(self.capture_times_ms)

    @property
    def capture_fps(self) -> float:
        """Frames captured per second of capture time."""
        total_ms = sum(self.capture_times_ms)
        if total_ms == 0:
            return 0.0
        return self.captured_frames / (total_ms / 1000)

    def record_frame(self, frame_time_ms: float) -> None:
        self.captured_frames += 1
        self.capture_times_ms.append(frame_time_ms)

    def record_retry(self) -> None:
        self.retry_count += 1

    def record_reclaim(self) -> None:
        self.reclaim_count += 1

    def record_batch(self, index: int, seconds: float) -> None:
        self.encoded_batches += 1
        self.batch_times_s[index] = seconds

    def record_phase(self, phase: str, seconds: float) -> None:
        self.phase_seconds[phase] = self.phase_seconds.get(phase, 0.0) + seconds

    def record_error(self, error: BaseException, context: Optional[Dict] = None) -> None:
        """Record an error occurrence."""
        self.errors.append({
            "type": type(error).__name__,
            "message": str(error),
            "timestamp": datetime.now().isoformat(),
            "context": context or {},
        })

    def finish(self) -> None:
        """Mark the export as finished."""
        self.end_time = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary, replacing raw timings with statistics."""
        data = asdict(self)
        data.pop("capture_times_ms")

        if self.start_time:
            data["start_time"] = self.start_time.isoformat()
        if self.end_time:
            data["end_time"] = self.end_time.isoformat()

        data["elapsed_seconds"] = self.elapsed_seconds
        data["avg_capture_ms"] = self.avg_capture_ms
        data["p95_capture_ms"] = _percentile(self.capture_times_ms, 95)
        data["max_capture_ms"] = max(self.capture_times_ms, default=0.0)
        data["capture_fps"] = self.capture_fps
        return data

    def export_json(self, path: Path) -> None:
        """Export metrics to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)
        logger.info(f"Metrics exported to {path}")

    def summary(self) -> str:
        """Generate human-readable summary."""
        batch_times = list(self.batch_times_s.values())
        lines = [
            "=" * 50,
            "Export Metrics Summary",
            "=" * 50,
            f"Frames: {self.captured_frames}/{self.total_frames}",
            f"Batches: {self.encoded_batches}/{self.total_batches}",
            "",
            f"Elapsed Time: {self.elapsed_seconds:.1f}s",
            f"Avg Capture Time: {self.avg_capture_ms:.1f}ms",
            f"Capture Speed: {self.capture_fps:.2f} fps",
            f"Avg Batch Encode: {_mean(batch_times):.1f}s",
            "",
            f"Retries: {self.retry_count}",
            f"Resource Reclaims: {self.reclaim_count}",
            f"Errors: {len(self.errors)}",
            "=" * 50,
        ]
        return "\n".join(lines)
