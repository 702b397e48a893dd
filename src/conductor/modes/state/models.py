"""State record and validation result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

DEFAULT_STATE_ID = "current"
LEGACY_SCHEMA_VERSION = "1.0.0"


@dataclass(frozen=True, slots=True)
class StateRecord:
    """Immutable unit of durable per-mode data.

    Attributes:
        id: Record identifier, also the file stem on disk.
        mode_id: Identifier of the owning mode.
        timestamp: UTC time the record was built.
        data: Opaque keyed application payload.
        artifacts: References to artifacts produced by the mode.
        schema_version: Schema version the payload was written with.
            None marks legacy data written before versioning.
        checksum: SHA-256 over the canonical payload fields.
        compressed: Whether the on-disk payload was compressed.
    """

    id: str
    mode_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = field(default_factory=dict)
    artifacts: tuple[str, ...] = ()
    schema_version: str | None = None
    checksum: str | None = None
    compressed: bool = False

    def payload(self) -> dict[str, Any]:
        """Return the fields covered by the checksum.

        The checksum and compression flag are excluded so the hash is
        stable across compression and re-stamping of the checksum itself.
        """
        return {
            "id": self.id,
            "mode_id": self.mode_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "artifacts": list(self.artifacts),
            "schema_version": self.schema_version,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict with the payload uncompressed."""
        return {
            **self.payload(),
            "checksum": self.checksum,
            "compressed": self.compressed,
        }


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating a state record. Pure data, no side effects.

    Attributes:
        is_valid: True when no errors were found.
        errors: Problems that make the record unusable.
        warnings: Problems that do not prevent use.
        needs_migration: Whether the schema version differs from the target.
        current_version: Schema version found on the record.
        target_version: Schema version expected by the loading mode.
    """

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    needs_migration: bool = False
    current_version: str | None = None
    target_version: str | None = None

    @classmethod
    def build(
        cls,
        errors: list[str] | None = None,
        warnings: list[str] | None = None,
        *,
        needs_migration: bool = False,
        current_version: str | None = None,
        target_version: str | None = None,
    ) -> ValidationResult:
        """Create a result whose validity is derived from the error list."""
        errors = list(errors or [])
        return cls(
            is_valid=not errors,
            errors=errors,
            warnings=list(warnings or []),
            needs_migration=needs_migration,
            current_version=current_version,
            target_version=target_version,
        )
