"""Render engine interface and a deterministic test-pattern renderer."""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class RenderEngine(ABC):
    """Animation renderer driven frame by frame by the exporter.

    Implementations must render a pure function of the timestamp: seeking
    to the same time twice yields identical pixels.
    """

    @abstractmethod
    def pause(self) -> None:
        """Stop any real-time playback so the exporter owns the timeline."""

    @abstractmethod
    async def seek_to(self, timestamp_ms: float) -> None:
        """Move the animation to ``timestamp_ms`` and return once it has settled."""

    @abstractmethod
    async def capture_pixels(self, width: int, height: int, include_overlays: bool) -> bytes:
        """Render the current state as row-major RGBA, ``width * height * 4`` bytes."""

    def reclaim_resources(self) -> None:
        """Release caches accumulated during a long capture. Optional."""


class TestPatternEngine(RenderEngine):
    """Deterministic numpy renderer.

    Draws a horizontal gradient whose hue drifts with time and a white bar
    sweeping left to right once per ``sweep_ms``. With overlays enabled a
    one-pixel border and a frame-position tick are added.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, sweep_ms: float = 4000.0, bar_width: int = 24):
        if sweep_ms <= 0:
            raise ValueError("sweep_ms must be positive")
        self.sweep_ms = sweep_ms
        self.bar_width = bar_width
        self._time_ms: Optional[float] = None
        self._paused = False
        self._gradients: Dict[Tuple[int, int], np.ndarray] = {}
        self.seek_count = 0
        self.capture_count = 0
        self.reclaim_count = 0

    @property
    def current_time_ms(self) -> Optional[float]:
        return self._time_ms

    def pause(self) -> None:
        self._paused = True

    async def seek_to(self, timestamp_ms: float) -> None:
        self._time_ms = float(timestamp_ms)
        self.seek_count += 1

    async def capture_pixels(self, width: int, height: int, include_overlays: bool) -> bytes:
        if self._time_ms is None:
            raise RuntimeError("capture_pixels() called before seek_to()")

        t = self._time_ms
        frame = self._gradient(width, height).copy()

        # Hue drift: rotate channel intensities with time.
        phase = (t / self.sweep_ms) % 1.0
        shift = np.uint8(int(phase * 255))
        frame[..., 0] = frame[..., 0] + shift
        frame[..., 2] = frame[..., 2] - shift

        bar_x = int(phase * max(width - self.bar_width, 1))
        frame[:, bar_x:bar_x + self.bar_width, :3] = 255

        if include_overlays:
            frame[0, :, :3] = 0
            frame[-1, :, :3] = 0
            frame[:, 0, :3] = 0
            frame[:, -1, :3] = 0
            tick = min(int(phase * width), width - 1)
            frame[-8:, tick, :3] = (255, 0, 0)

        frame[..., 3] = 255
        self.capture_count += 1
        return frame.tobytes()

    def reclaim_resources(self) -> None:
        self._gradients.clear()
        self.reclaim_count += 1

    def _gradient(self, width: int, height: int) -> np.ndarray:
        key = (width, height)
        if key not in self._gradients:
            ramp = np.linspace(0, 255, num=width, dtype=np.float32).astype(np.uint8)
            column = np.linspace(64, 192, num=height, dtype=np.float32).astype(np.uint8)
            frame = np.zeros((height, width, 4), dtype=np.uint8)
            frame[..., 0] = ramp[np.newaxis, :]
            frame[..., 1] = column[:, np.newaxis]
            frame[..., 2] = 255 - ramp[np.newaxis, :]
            self._gradients[key] = frame
        return self._gradients[key]
