"""Conductor core module - shared types and errors."""

from conductor.core.errors import (
    CircularDependencyError,
    ConductorError,
    ConfigurationError,
    MissingDependencyError,
    ModeError,
    ModeExecutionError,
    ModeLifecycleError,
    ModeValidationError,
    NotAvailableError,
    PersistenceError,
    StateCorruptedError,
    ValidationError,
    WriteFailureError,
)
from conductor.core.types import Result

__all__ = [
    # Types
    "Result",
    # Errors
    "ConductorError",
    "ConfigurationError",
    "ModeError",
    "NotAvailableError",
    "MissingDependencyError",
    "CircularDependencyError",
    "ModeValidationError",
    "ModeLifecycleError",
    "ModeExecutionError",
    "PersistenceError",
    "StateCorruptedError",
    "WriteFailureError",
    "ValidationError",
]
