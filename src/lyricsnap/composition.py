"""Final assembly of encoded segments into the caller's output file."""
import asyncio
import logging
import os
import uuid
from pathlib import Path
from typing import Optional, Sequence

from .encoder import EncoderService
from .errors import ComposeError, create_error_context
from .validators import validate_output_file

logger = logging.getLogger(__name__)


def partial_output_path(output_path: Path) -> Path:
    """Temporary sibling the output is assembled into before the final rename."""
    return output_path.with_name(
        f"{output_path.stem}.partial-{uuid.uuid4().hex[:8]}{output_path.suffix}"
    )


class CompositionStage:
    """Concatenates segments in order and optionally muxes an audio track.

    The output appears at the caller path only once it is complete: it is
    assembled into a temporary sibling, verified, then renamed over the
    destination. On failure a file already at the destination is untouched.
    """

    def __init__(self, encoder: EncoderService, compose_timeout: Optional[float] = 600.0):
        self.encoder = encoder
        self.compose_timeout = compose_timeout

    async def compose(
        self,
        segments: Sequence[Path],
        output_path: Path,
        audio_path: Optional[Path] = None,
    ) -> Path:
        """Write the final video to ``output_path``.

        Raises:
            ComposeError: If concatenation fails, times out or yields no file
        """
        if not segments:
            raise ComposeError("No segments to compose")

        missing = [str(s) for s in segments if not Path(s).is_file()]
        if missing:
            raise ComposeError(
                f"{len(missing)} segment(s) missing before composition",
                context=create_error_context(
                    stage="composing", operation="compose", output_file=output_path, missing=missing
                ),
            )

        output_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = partial_output_path(output_path)
        logger.info(
            f"Composing {len(segments)} segment(s) into {output_path}"
            + (f" with audio {audio_path.name}" if audio_path else "")
        )

        try:
            await asyncio.wait_for(
                self.encoder.concatenate_segments(
                    list(segments), audio_path, tmp_path, timeout=self.compose_timeout
                ),
                self.compose_timeout,
            )
            if not validate_output_file(tmp_path):
                raise ComposeError(
                    "Composition produced an empty or missing file",
                    context=create_error_context(
                        stage="composing", operation="verify_output", output_file=tmp_path
                    ),
                )
            os.replace(tmp_path, output_path)
        except ComposeError:
            tmp_path.unlink(missing_ok=True)
            raise
        except asyncio.TimeoutError as e:
            tmp_path.unlink(missing_ok=True)
            raise ComposeError(
                f"Composition timed out after {self.compose_timeout}s",
                context=create_error_context(
                    stage="composing", operation="compose", output_file=output_path
                ),
            ) from e
        except Exception as e:
            tmp_path.unlink(missing_ok=True)
            raise ComposeError(
                f"Composition failed: {e}",
                context=create_error_context(
                    stage="composing", operation="compose", output_file=output_path
                ),
            ) from e
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        logger.info(f"Wrote {output_path} ({output_path.stat().st_size / 1024 / 1024:.1f} MB)")
        return output_path
