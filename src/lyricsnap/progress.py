"""Progress aggregation for export sessions.

Maps the active phase and its counters onto one overall percentage that
never decreases:

    PREPARING    0 -  5
    CAPTURING    5 - 85
    ENCODING    85 - 95
    COMPOSING   95 - 100
    FINALIZING 100
"""
import logging
from typing import Callable, Dict, Optional, Tuple

from .types import ExportPhase, ExportProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ExportProgress], None]

PHASE_RANGES: Dict[ExportPhase, Tuple[float, float]] = {
    ExportPhase.PREPARING: (0.0, 5.0),
    ExportPhase.CAPTURING: (5.0, 85.0),
    ExportPhase.ENCODING: (85.0, 95.0),
    ExportPhase.COMPOSING: (95.0, 100.0),
    ExportPhase.FINALIZING: (100.0, 100.0),
}


def phase_percent(phase: ExportPhase, current: Optional[int] = None, total: Optional[int] = None) -> float:
    """Overall percentage for ``current`` of ``total`` within ``phase``."""
    low, high = PHASE_RANGES[phase]
    if phase is ExportPhase.FINALIZING:
        return high
    if current is None or not total:
        return low
    fraction = min(max(current / total, 0.0), 1.0)
    return low + fraction * (high - low)


class ProgressReporter:
    """Monotonic progress reporter for one export session.

    The only state is the last reported percentage; a report that would go
    backwards is clamped to it.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self._last: Optional[ExportProgress] = None

    @property
    def last(self) -> Optional[ExportProgress]:
        return self._last

    @property
    def percent(self) -> float:
        return self._last.percent if self._last else 0.0

    def report(
        self,
        phase: ExportPhase,
        current: Optional[int] = None,
        total: Optional[int] = None,
        message: Optional[str] = None,
    ) -> ExportProgress:
        """Record and forward a progress observation."""
        percent = max(phase_percent(phase, current, total), self.percent)
        progress = ExportProgress(
            phase=phase,
            percent=round(percent, 2),
            current=current,
            total=total,
            message=message,
        )
        self._last = progress

        if self.callback:
            try:
                self.callback(progress)
            except Exception as e:
                logger.warning(f"Progress callback error: {e}")

        return progress
