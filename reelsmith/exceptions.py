"""Custom exceptions for the reelsmith pipeline.

Every error carries a machine-readable code (see constants.error_codes) so a
failed job can record why it failed and whether retrying makes sense.
"""

from typing import Any, Literal

from reelsmith.constants.error_codes import get_error_spec, is_retryable


class ReelsmithError(Exception):
    """Base exception for all reelsmith errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return is_retryable(self.code)

    def to_dict(self) -> dict[str, Any]:
        spec = get_error_spec(self.code)
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": spec.get("retryable", False),
        }
        if "suggested_fix" in spec:
            data["suggested_fix"] = spec["suggested_fix"]
        return data


# =============================================================================
# Input errors
# =============================================================================


class ValidationError(ReelsmithError):
    """Request rejected before any work started."""

    code = "VALIDATION_ERROR"
    message = "Invalid request"

    def __init__(self, message: str | None = None, *, field: str | None = None):
        self.field = field
        super().__init__(message)


class AssetResolutionError(ReelsmithError):
    """An asset reference could not be turned into a local file."""

    message = "Asset could not be resolved"

    def __init__(
        self,
        message: str | None = None,
        *,
        reason: Literal["not-found", "download-failed"] = "not-found",
        ref: str | None = None,
        probed_paths: list[str] | None = None,
    ):
        self.reason = reason
        self.ref = ref
        self.probed_paths = probed_paths or []
        code = "ASSET_NOT_FOUND" if reason == "not-found" else "ASSET_DOWNLOAD_FAILED"
        super().__init__(message, code=code)


# =============================================================================
# Processing errors
# =============================================================================


class TranscodeError(ReelsmithError):
    """ffmpeg exited with a nonzero status."""

    code = "TRANSCODE_FAILED"
    message = "Transcode failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        stderr: str = "",
        returncode: int | None = None,
    ):
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        # ffmpeg prints the banner first; the tail holds the actual failure
        data["stderr"] = self.stderr[-2000:]
        data["returncode"] = self.returncode
        return data


class MediaProbeError(ReelsmithError):
    """ffprobe failed or returned unusable output."""

    code = "MEDIA_PROBE_FAILED"
    message = "Media probe failed"


class JobNotFoundError(ReelsmithError):
    code = "JOB_NOT_FOUND"
    message = "Job not found"

    def __init__(self, job_id: str | None = None):
        message = f"Job not found: {job_id}" if job_id else self.message
        super().__init__(message)


# =============================================================================
# External service errors
# =============================================================================


class RateLimitExceeded(ReelsmithError):
    """Admission refused by the sliding-window limiter."""

    code = "RATE_LIMITED"
    message = "Rate limit exceeded"

    def __init__(self, retry_after: float, message: str | None = None):
        self.retry_after = retry_after
        super().__init__(message or f"Rate limit exceeded, retry after {retry_after:.2f}s")


class SynthesisError(ReelsmithError):
    """Voice synthesis failed after exhausting retries."""

    code = "SYNTHESIS_FAILED"
    message = "Voice synthesis failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        attempts: int = 0,
    ):
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(message)


class PollTimeoutError(ReelsmithError, TimeoutError):
    """A polled remote task did not finish within its attempt budget."""

    code = "SYNTHESIS_TIMEOUT"
    message = "Voice generation timed out"


class TranscriptionError(ReelsmithError):
    code = "TRANSCRIPTION_FAILED"
    message = "Transcription failed"
