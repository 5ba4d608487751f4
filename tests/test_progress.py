"""Tests for the progress reporter."""
import pytest

from lyricsnap.progress import PHASE_RANGES, ProgressReporter, phase_percent
from lyricsnap.types import ExportPhase


class TestPhasePercent:
    """Tests for mapping phase counters onto the overall range."""

    @pytest.mark.parametrize("phase,current,total,expected", [
        (ExportPhase.PREPARING, None, None, 0.0),
        (ExportPhase.PREPARING, 1, 1, 5.0),
        (ExportPhase.CAPTURING, 0, 150, 5.0),
        (ExportPhase.CAPTURING, 75, 150, 45.0),
        (ExportPhase.CAPTURING, 150, 150, 85.0),
        (ExportPhase.ENCODING, 1, 2, 90.0),
        (ExportPhase.ENCODING, 2, 2, 95.0),
        (ExportPhase.COMPOSING, 0, 1, 95.0),
        (ExportPhase.FINALIZING, None, None, 100.0),
    ])
    def test_ranges(self, phase, current, total, expected):
        assert phase_percent(phase, current, total) == pytest.approx(expected)

    def test_overshoot_clamped_to_phase(self):
        assert phase_percent(ExportPhase.CAPTURING, 200, 150) == 85.0

    def test_ranges_are_contiguous(self):
        """Test each phase starts where the previous one ends."""
        order = list(ExportPhase)
        for previous, current in zip(order, order[1:]):
            assert PHASE_RANGES[previous][1] == PHASE_RANGES[current][0]


class TestProgressReporter:
    """Tests for ProgressReporter."""

    def test_forwards_to_callback(self):
        received = []
        reporter = ProgressReporter(received.append)

        progress = reporter.report(ExportPhase.CAPTURING, 3, 10, message="frame 3")

        assert received == [progress]
        assert progress.phase is ExportPhase.CAPTURING
        assert progress.percent == 29.0
        assert progress.current == 3
        assert progress.total == 10
        assert progress.message == "frame 3"
        assert reporter.last is progress

    def test_never_decreases(self):
        """Test a lower observation is clamped to the last percentage."""
        reporter = ProgressReporter()
        reporter.report(ExportPhase.CAPTURING, 10, 10)
        progress = reporter.report(ExportPhase.CAPTURING, 5, 10)
        assert progress.percent == 85.0
        assert progress.current == 5

    def test_rounded_to_two_decimals(self):
        reporter = ProgressReporter()
        assert reporter.report(ExportPhase.CAPTURING, 1, 3).percent == 31.67

    def test_callback_errors_do_not_propagate(self, caplog):
        """Test a faulty listener cannot break the export."""
        def broken(progress):
            raise ValueError("listener crashed")

        reporter = ProgressReporter(broken)
        progress = reporter.report(ExportPhase.PREPARING)

        assert progress.percent == 0.0
        assert "listener crashed" in caplog.text

    def test_without_callback(self):
        reporter = ProgressReporter()
        assert reporter.percent == 0.0
        assert reporter.last is None
        reporter.report(ExportPhase.FINALIZING)
        assert reporter.percent == 100.0
