"""Tests for the errors module."""
import asyncio

import pytest

from lyricsnap.errors import (
    CancelledError,
    CaptureError,
    ComposeError,
    ContinuityError,
    DiskSpaceError,
    EncodeError,
    ErrorContext,
    ExportError,
    ExportInProgressError,
    FFmpegNotFoundError,
    RetryPolicy,
    SessionStateError,
    ValidationError,
    create_error_context,
    retry_async,
)


class TestErrorHierarchy:
    """Tests for error class hierarchy."""

    @pytest.mark.parametrize("cls", [
        ValidationError,
        CaptureError,
        ContinuityError,
        EncodeError,
        ComposeError,
        CancelledError,
        ExportInProgressError,
        SessionStateError,
        DiskSpaceError,
    ])
    def test_all_are_export_errors(self, cls):
        """Test every pipeline error can be caught as ExportError."""
        assert issubclass(cls, ExportError)

    def test_ffmpeg_missing_is_encode_error(self):
        assert isinstance(FFmpegNotFoundError("no ffmpeg"), EncodeError)

    def test_export_cancel_is_not_asyncio_cancel(self):
        """Test the export CancelledError is a regular exception."""
        assert not issubclass(CancelledError, asyncio.CancelledError)

    def test_last_progress_defaults_to_none(self):
        error = CaptureError("bad frame")
        assert error.last_progress is None
        assert error.context is None
        assert str(error) == "bad frame"


class TestErrorContext:
    """Tests for ErrorContext."""

    def test_create_context_stringifies(self, tmp_path):
        """Test paths and command parts become strings."""
        context = create_error_context(
            stage="encoding",
            operation="encode_batch",
            batch_index=2,
            output_file=tmp_path / "batch_0002.mp4",
            command=["ffmpeg", "-i", tmp_path / "frame_%06d.png"],
            return_code=1,
            attempt=3,
        )

        assert context.output_file == str(tmp_path / "batch_0002.mp4")
        assert context.command[2] == str(tmp_path / "frame_%06d.png")
        assert context.additional_info == {"attempt": 3}

    def test_to_dict(self):
        context = create_error_context(stage="capturing", operation="capture", frame_index=7)
        data = context.to_dict()
        assert data["stage"] == "capturing"
        assert data["frame_index"] == 7
        assert data["batch_index"] is None
        assert "timestamp" in data

    def test_str_lists_known_fields(self):
        context = ErrorContext(
            stage="composing",
            operation="concat",
            command=["ffmpeg", "-f", "concat"],
            return_code=1,
            stderr="x" * 1000,
        )
        text = str(context)
        assert "Stage: composing" in text
        assert "Command: ffmpeg -f concat" in text
        assert "Return code: 1" in text
        assert "Frame:" not in text
        assert text.endswith("x" * 500)


class TestRetryPolicy:
    """Tests for RetryPolicy decisions."""

    def test_retries_until_limit(self):
        policy = RetryPolicy(max_attempts=3)
        error = RuntimeError("glitch")
        assert policy.should_retry(error, 1)
        assert policy.should_retry(error, 2)
        assert not policy.should_retry(error, 3)

    def test_export_errors_not_retried(self):
        """Test classified failures are never repeated."""
        policy = RetryPolicy(max_attempts=5)
        assert not policy.should_retry(CaptureError("size mismatch"), 1)

    def test_retry_on_filters(self):
        policy = RetryPolicy(max_attempts=3, retry_on=(TimeoutError,))
        assert policy.should_retry(TimeoutError(), 1)
        assert not policy.should_retry(ValueError(), 1)

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestRetryAsync:
    """Tests for retry_async."""

    def test_succeeds_after_transient_failures(self):
        calls = []
        retries = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RuntimeError("not yet")
            return "ok"

        result = asyncio.run(retry_async(
            flaky,
            RetryPolicy(max_attempts=3),
            on_retry=lambda error, attempt: retries.append(attempt),
        ))

        assert result == "ok"
        assert len(calls) == 3
        assert retries == [1, 2]

    def test_final_failure_reraised_unchanged(self):
        error = RuntimeError("always")

        async def broken():
            raise error

        with pytest.raises(RuntimeError) as exc_info:
            asyncio.run(retry_async(broken, RetryPolicy(max_attempts=2)))
        assert exc_info.value is error

    def test_give_up_immediately(self):
        calls = []

        async def fatal():
            calls.append(1)
            raise ContinuityError("gap")

        with pytest.raises(ContinuityError):
            asyncio.run(retry_async(fatal, RetryPolicy(max_attempts=3)))
        assert len(calls) == 1
