"""On-disk staging of captured frames.

Each frame is written as one zero-padded PNG (``frame_000000.png``) inside
the session's ``frames/`` directory. Writes go to a temporary name first
and are renamed into place, so a path recorded in the store always points
at a complete file.
"""
import logging
import os
from pathlib import Path
from typing import Dict, List

import numpy as np
from PIL import Image

from .errors import ContinuityError, create_error_context
from .types import FRAME_FILENAME_PATTERN, FrameSequence
from .utils.async_io import run_blocking

logger = logging.getLogger(__name__)


class FrameStore:
    """Index-addressed PNG frame staging for one export session.

    Frames must be written densely in increasing index order; the store
    rejects gaps and rewrites so a batch can trust any range it reports as
    present.
    """

    def __init__(
        self,
        directory: Path,
        width: int,
        height: int,
        pattern: str = FRAME_FILENAME_PATTERN,
        compression_level: int = 1,
    ):
        self.directory = Path(directory)
        self.width = width
        self.height = height
        self.pattern = pattern
        self.compression_level = compression_level
        self._paths: Dict[int, Path] = {}
        self._next_index = 0
        self._released = 0

    @property
    def written(self) -> int:
        """Number of frames written so far, including released ones."""
        return self._next_index

    @property
    def resident(self) -> int:
        """Number of frame files currently on disk."""
        return len(self._paths)

    @property
    def released(self) -> int:
        return self._released

    def path_for(self, index: int) -> Path:
        return self.directory / (self.pattern % index)

    async def write(self, index: int, buffer: bytes) -> Path:
        """Persist the RGBA ``buffer`` of frame ``index`` as PNG.

        Raises:
            ContinuityError: If ``index`` is not the next frame in sequence
            ValueError: If ``buffer`` or the written PNG does not match the store resolution
            OSError: If the PNG cannot be written
        """
        if index != self._next_index:
            raise ContinuityError(
                f"Frame {index} written out of order; expected frame {self._next_index}",
                context=create_error_context(
                    stage="capture", operation="write_frame", frame_index=index
                ),
            )

        expected = self.width * self.height * 4
        if len(buffer) != expected:
            raise ValueError(
                f"Frame {index}: buffer has {len(buffer)} bytes, expected {expected}"
            )

        path = self.path_for(index)
        await run_blocking(self._write_png, path, buffer)

        self._paths[index] = path
        self._next_index = index + 1
        return path

    def _write_png(self, path: Path, buffer: bytes) -> None:
        pixels = np.frombuffer(buffer, dtype=np.uint8).reshape(self.height, self.width, 4)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            Image.fromarray(pixels).save(
                tmp_path, format="PNG", compress_level=self.compression_level
            )
            self._verify_png(tmp_path)
            os.replace(tmp_path, path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

    def _verify_png(self, path: Path) -> None:
        """Reopen a written PNG and check it is non-empty and full size.

        Raises:
            ValueError: If the file is empty or its dimensions differ
        """
        if path.stat().st_size == 0:
            raise ValueError(f"PNG {path.name} is empty")
        with Image.open(path) as img:
            size = img.size
        if size != (self.width, self.height):
            raise ValueError(
                f"PNG {path.name} is {size[0]}x{size[1]}, expected {self.width}x{self.height}"
            )

    def has_range(self, start: int, end: int) -> bool:
        """True if every frame in ``[start, end)`` is staged on disk."""
        return all(i in self._paths and self._paths[i].is_file() for i in range(start, end))

    def missing(self, start: int, end: int) -> List[int]:
        return [
            i for i in range(start, end)
            if i not in self._paths or not self._paths[i].is_file()
        ]

    def sequence(self, start: int, end: int) -> FrameSequence:
        """Describe staged frames ``[start, end)`` for an encoder.

        Raises:
            ContinuityError: If any frame of the range is not on disk
        """
        if start < 0 or end <= start:
            raise ContinuityError(f"Invalid frame range [{start}, {end})")

        missing = self.missing(start, end)
        if missing:
            preview = ", ".join(str(i) for i in missing[:5])
            raise ContinuityError(
                f"Frames missing from store for range [{start}, {end}): {preview}"
                + (" ..." if len(missing) > 5 else ""),
                context=create_error_context(
                    stage="encoding",
                    operation="frame_sequence",
                    missing_frames=len(missing),
                ),
            )
        return FrameSequence(self.directory, start, end, self.pattern)

    def release(self, start: int, end: int) -> int:
        """Delete staged frames ``[start, end)``. Returns the number removed."""
        removed = 0
        for index in range(start, end):
            path = self._paths.pop(index, None)
            if path is None:
                continue
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                pass
        self._released += removed
        logger.debug(f"Released {removed} frames [{start}, {end})")
        return removed

    def __len__(self) -> int:
        return len(self._paths)

    def __repr__(self) -> str:
        return (
            f"FrameStore(directory={str(self.directory)!r}, written={self._next_index}, "
            f"resident={len(self._paths)})"
        )
