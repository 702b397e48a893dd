"""Error hierarchy for Conductor.

This module defines the exception hierarchy for Conductor. These exceptions
are raised for exceptional conditions and are also used as error types in
Result for expected failures (for example dependency validation).

Exception Hierarchy:
    ConductorError (base)
    ├── ConfigurationError      - Bad descriptors, config files, registry misuse
    ├── ModeError               - Mode lifecycle failures
    │   ├── NotAvailableError
    │   ├── MissingDependencyError
    │   ├── CircularDependencyError
    │   ├── ModeValidationError
    │   ├── ModeLifecycleError
    │   └── ModeExecutionError
    ├── PersistenceError        - Storage issues
    │   ├── StateCorruptedError
    │   └── WriteFailureError
    └── ValidationError         - Data validation failures
"""

from collections.abc import Sequence
from typing import Any


class ConductorError(Exception):
    """Base exception for all Conductor errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dict with additional context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error description.
            details: Optional dict with additional context about the error.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigurationError(ConductorError):
    """Error from configuration operations.

    Raised for invalid mode descriptors, unreadable config files and
    registry calls made in the wrong lifecycle state.

    Attributes:
        config_key: The configuration key that caused the error.
        config_file: Path to the config file if applicable.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        config_file: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.config_key = config_key
        self.config_file = config_file


class ModeError(ConductorError):
    """Error tied to a specific mode identifier.

    Attributes:
        mode_id: Identifier of the mode involved.
    """

    def __init__(
        self,
        message: str,
        *,
        mode_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.mode_id = mode_id


class NotAvailableError(ModeError):
    """Raised when a mode is unregistered or disabled."""


class MissingDependencyError(ModeError):
    """Raised when dependencies of a mode are absent or disabled.

    Attributes:
        missing: Every missing or disabled dependency identifier.
    """

    def __init__(
        self,
        mode_id: str,
        missing: Sequence[str],
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.missing = tuple(missing)
        super().__init__(
            f"Cannot create mode '{mode_id}': missing dependencies: {', '.join(self.missing)}",
            mode_id=mode_id,
            details=details,
        )


class CircularDependencyError(ModeError):
    """Raised when a dependency cycle is reachable from a mode.

    Attributes:
        cycle: Identifiers along the cycle; the first and last entries are equal.
    """

    def __init__(
        self,
        mode_id: str,
        cycle: Sequence[str],
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.cycle = tuple(cycle)
        super().__init__(
            f"Cannot create mode '{mode_id}': circular dependency detected: "
            f"{' -> '.join(self.cycle)}",
            mode_id=mode_id,
            details=details,
        )


class ModeValidationError(ModeError):
    """Raised when a freshly constructed mode fails its own validation."""


class ModeLifecycleError(ModeError):
    """Raised when construction or cleanup of a mode instance fails."""


class ModeExecutionError(ModeError):
    """Raised by Mode.execute when the underlying execution failed."""


class PersistenceError(ConductorError):
    """Error from storage operations.

    Attributes:
        operation: The operation that failed (e.g., "read", "write").
        path: The storage path involved if applicable.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.operation = operation
        self.path = path


class StateCorruptedError(PersistenceError):
    """Raised when both the primary state record and its backup are unusable."""


class WriteFailureError(PersistenceError):
    """Raised when a state write still fails after every retry attempt."""


class ValidationError(ConductorError):
    """Error from data validation operations.

    Attributes:
        field: The field that failed validation.
        value: The invalid value if safe to include.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field
        self.value = value

    def __str__(self) -> str:
        base = self.message
        if self.field:
            base = f"{base} (field: {self.field}, value: {self.value!r})"
        if self.details:
            base = f"{base} (details: {self.details})"
        return base
