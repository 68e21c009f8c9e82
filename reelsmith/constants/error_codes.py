"""Error codes dictionary for the media pipeline.

This is the single source of truth for all error codes and their
retryability. Used when a failure is recorded on a job or surfaced to a
caller as a machine-readable payload.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Input errors (not retryable, fix input)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "ASSET_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Upload the asset to the uploads or temp directory before submitting",
    },
    # ==========================================================================
    # External/transient errors
    # ==========================================================================
    "ASSET_DOWNLOAD_FAILED": {
        "retryable": True,
        "suggested_fix": "Check that the remote URL is reachable",
    },
    "RATE_LIMITED": {
        "retryable": True,
        "suggested_fix": "Wait for retry_after seconds before the next request",
    },
    "SYNTHESIS_FAILED": {
        "retryable": True,
    },
    "SYNTHESIS_TIMEOUT": {
        "retryable": True,
    },
    "TRANSCRIPTION_FAILED": {
        "retryable": True,
    },
    # ==========================================================================
    # Processing errors
    # ==========================================================================
    "TRANSCODE_FAILED": {
        "retryable": False,
        "suggested_fix": "Inspect the ffmpeg stderr attached to the error",
    },
    "MEDIA_PROBE_FAILED": {
        "retryable": False,
    },
    "JOB_NOT_FOUND": {
        "retryable": False,
    },
    "INTERNAL_ERROR": {
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and optional fix hint
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    return get_error_spec(code).get("retryable", False)
