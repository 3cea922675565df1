"""Shared error handling utilities.

Helpers for the "log it and carry on with a fallback" pattern used where a
failure must degrade a result instead of aborting it.
"""

from typing import Any, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class ErrorHandler:
    """Standard logging patterns for recoverable failures"""

    @staticmethod
    def log_and_return_default(
        operation_name: str, exception: Exception, default_value: T, **kwargs: Any
    ) -> T:
        """Log the failure and return the supplied fallback value"""
        logger.warning(f"Failed to {operation_name}", error=str(exception), **kwargs)
        return default_value

    @staticmethod
    def log_and_reraise(
        operation_name: str, exception: Exception, **kwargs: Any
    ) -> None:
        """Log the failure and propagate the exception"""
        logger.error(f"Failed to {operation_name}", error=str(exception), **kwargs)
        raise exception
