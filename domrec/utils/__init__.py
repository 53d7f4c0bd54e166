"""Utility modules for domrec.

Provides:
- Structured logging configuration
"""

from .logging import (
    configure_logging,
    configure_logging_from_settings,
    get_logger,
    log_operation,
)

__all__ = [
    # Logging
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "log_operation",
]
