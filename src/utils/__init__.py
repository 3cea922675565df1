"""Utility modules for the gap engine"""

from .error_handler import ErrorHandler
from .logger import (
    get_logger,
    setup_logging,
)
from .mixins import LoggerMixin

__all__ = [
    "ErrorHandler",
    "LoggerMixin",
    "get_logger",
    "setup_logging",
]
