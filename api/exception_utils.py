"""
Standardized exception handling utilities.

Keeps upload handlers consistent: domain errors and HTTPExceptions pass through
untouched, media tool and storage failures become sanitized 500s, and anything unexpected is
logged with its traceback and reported as a generic internal error.
"""

import functools
import logging
from typing import Any, Callable, TypeVar

from fastapi import HTTPException

from api.errors import APIError, InternalServerError, MediaToolError, ObjectStorageError, sanitize_error_message

logger = logging.getLogger(__name__)

T = TypeVar("T")


def handle_api_exceptions(
    operation_name: str,
    error_detail: str = "Internal server error",
    log_errors: bool = True,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for standardized exception handling in API endpoints.

    Args:
        operation_name: Name of the operation for logging context
        error_detail: Client-facing message for unexpected exceptions
        log_errors: Whether to log exceptions (default: True)

    Example:
        @handle_api_exceptions("video_upload", "Failed to upload video")
        async def upload_video(...):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except (APIError, HTTPException):
                raise
            except (MediaToolError, ObjectStorageError) as e:
                detail = sanitize_error_message(str(e), log_original=log_errors, context=operation_name)
                raise InternalServerError(detail) from e
            except Exception as e:
                if log_errors:
                    logger.exception(f"Unexpected error in {operation_name}: {e}")
                raise InternalServerError(error_detail) from e
        return wrapper
    return decorator
