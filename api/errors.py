"""
Error types and message helpers for the HTTP API.

Domain errors carry their HTTP status so handlers can raise them anywhere and
a single exception handler turns them into JSON responses. Internal failure
messages are sanitized before reaching API clients while the original text is
logged for debugging.
"""
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for errors that map to a fixed HTTP status."""

    status_code = 500

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class BadRequestError(APIError):
    """Malformed input, missing fields, oversize or wrong media type."""

    status_code = 400


class UnauthorizedError(APIError):
    """Missing, malformed, invalid or expired bearer token."""

    status_code = 401


class ForbiddenError(APIError):
    """Authenticated, but not allowed to touch this record."""

    status_code = 403


class NotFoundError(APIError):
    status_code = 404


class InternalServerError(APIError):
    status_code = 500


class MediaToolError(RuntimeError):
    """Raised when ffprobe/ffmpeg exits non-zero, times out or returns unusable output."""


class ObjectStorageError(RuntimeError):
    """Raised when an upload to the bucket fails."""


# Patterns that indicate internal details
INTERNAL_PATTERNS = [
    r'/home/\w+/',           # Home directory paths
    r'/tmp/\w+',             # Temp paths
    r'/var/\w+/',            # Var paths
    r'line \d+',             # Line numbers in stack traces
    r'File "[^"]+\.py"',     # Python file paths
    r'Permission denied',
    r'No such file or directory',
]

# Generic user-friendly messages for common error types
ERROR_MESSAGES = {
    "ffmpeg": "Video processing failed. Please try uploading again.",
    "ffprobe": "Could not read video file. The file may be corrupted or in an unsupported format.",
    "timeout": "Video processing timed out. Please try again.",
    "dimensions": "Could not determine video dimensions. Please upload a valid video file.",
    "storage": "Could not store the uploaded file. Please try again.",
    "general": "An error occurred while processing your request. Please try again.",
}


def truncate_string(value: Optional[str], max_length: int, suffix: str = "...") -> Optional[str]:
    """Truncate a string to max_length characters, suffix included."""
    if value is None:
        return None
    if len(value) <= max_length:
        return value
    if max_length <= len(suffix):
        return value[:max_length]
    return value[: max_length - len(suffix)] + suffix


def truncate_error(error: Optional[str], max_length: int) -> Optional[str]:
    """Truncate an error message, keeping the head where tools print the cause."""
    if error is None:
        return None
    return truncate_string(error.strip(), max_length)


def sanitize_error_message(
    error: Optional[str],
    log_original: bool = True,
    context: str = ""
) -> Optional[str]:
    """
    Sanitize an error message for safe display to API clients.

    Args:
        error: The original error message (may contain internal details)
        log_original: Whether to log the original message before sanitizing
        context: Additional context for logging (e.g., "video_id=abc")

    Returns:
        A sanitized, user-friendly error message, or None if input was None
    """
    if error is None:
        return None

    if log_original and error:
        log_msg = "Original error"
        if context:
            log_msg += f" ({context})"
        log_msg += f": {error}"
        logger.warning(log_msg)

    error_lower = error.lower()

    # Media tool errors start with the tool name; anything after it may be raw stderr
    tool, _, rest = error_lower.partition(" ")
    if tool in ("ffprobe", "ffmpeg"):
        if rest.startswith("timed out"):
            return ERROR_MESSAGES["timeout"]
        return ERROR_MESSAGES[tool]

    if "timed out" in error_lower or "timeout" in error_lower:
        return ERROR_MESSAGES["timeout"]

    if "dimensions" in error_lower or "no video stream" in error_lower:
        return ERROR_MESSAGES["dimensions"]

    if "ffprobe" in error_lower or "video info" in error_lower:
        return ERROR_MESSAGES["ffprobe"]

    if "ffmpeg" in error_lower or "process video" in error_lower:
        return ERROR_MESSAGES["ffmpeg"]

    if "s3" in error_lower or "bucket" in error_lower:
        return ERROR_MESSAGES["storage"]

    for pattern in INTERNAL_PATTERNS:
        if re.search(pattern, error, re.IGNORECASE):
            return ERROR_MESSAGES["general"]

    # Short messages without path-like segments are safe to pass through
    if len(error) < 100 and "/" not in error and "\\" not in error:
        return error

    return ERROR_MESSAGES["general"]
