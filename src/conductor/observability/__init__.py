"""Observability module for Conductor.

Main components:
- Logging: configure_logging, get_logger, bind_context, unbind_context
"""

from conductor.observability.logging import (
    LoggingConfig,
    LogMode,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    reset_logging,
    unbind_context,
)

__all__ = [
    "LogMode",
    "LoggingConfig",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "reset_logging",
    "unbind_context",
]
