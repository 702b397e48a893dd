"""State Manager - durable per-mode state persistence and recovery.

This module provides the save/load pipeline each mode uses for its state:
- Save: build record -> checksum -> compress if large -> backup -> atomic write
- Load: read primary -> decode -> verify -> migrate, falling back to the
  backup copy when the primary is unusable

Records live under ``<state_dir>/<mode_id>/<state_id>.json`` with a single
``.bak`` copy of the previous record beside them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

import stamina

from conductor.config.models import StateConfig
from conductor.core.errors import (
    PersistenceError,
    StateCorruptedError,
    ValidationError,
    WriteFailureError,
)
from conductor.modes.state.codec import StateCodec
from conductor.modes.state.models import (
    DEFAULT_STATE_ID,
    LEGACY_SCHEMA_VERSION,
    StateRecord,
    ValidationResult,
)
from conductor.observability.logging import get_logger
from conductor.persistence.files import FileStore

log = get_logger(__name__)

BACKUP_SUFFIX = ".bak"
RECORD_SUFFIX = ".json"

StateValidator = Callable[[StateRecord], ValidationResult]
StateMigrator = Callable[[StateRecord], Awaitable[StateRecord]]


class StateManager:
    """Manages the durable state records of a single mode.

    Save, load and clear calls on one manager are serialized by an
    asyncio lock, so saves for the same record apply in call order.

    Example:
        manager = StateManager("discovery", "2.0.0", files)
        await manager.save({"questions": [...]})
        record = await manager.load()
    """

    def __init__(
        self,
        mode_id: str,
        schema_version: str,
        files: FileStore,
        *,
        config: StateConfig | None = None,
        validator: StateValidator | None = None,
        migrator: StateMigrator | None = None,
    ) -> None:
        """Initialize the state manager.

        Args:
            mode_id: Identifier of the owning mode.
            schema_version: Current schema version of the mode's payload.
            files: Persistence primitive used for all I/O.
            config: State engine configuration.
            validator: Mode-specific validation hook, merged into validate_state.
            migrator: Mode-specific migration hook, called once per migration.
        """
        self._mode_id = mode_id
        self._schema_version = schema_version
        self._files = files
        self._config = config or StateConfig()
        self._validator = validator
        self._migrator = migrator
        self._codec = StateCodec(
            compression_threshold=self._config.compression_threshold,
            compression_enabled=self._config.compression_enabled,
        )
        self._lock = asyncio.Lock()

    @property
    def mode_id(self) -> str:
        return self._mode_id

    @property
    def schema_version(self) -> str:
        return self._schema_version

    @property
    def codec(self) -> StateCodec:
        return self._codec

    @property
    def state_dir(self) -> str:
        """Directory holding this mode's records, relative to the store root."""
        return f"{self._config.state_dir}/{self._mode_id}"

    def state_path(self, state_id: str | None = None) -> str:
        """Get the primary record path for a state id."""
        return f"{self.state_dir}/{state_id or DEFAULT_STATE_ID}{RECORD_SUFFIX}"

    def backup_path(self, state_id: str | None = None) -> str:
        """Get the backup record path for a state id."""
        return self.state_path(state_id) + BACKUP_SUFFIX

    async def save(
        self,
        data: dict[str, Any],
        artifacts: list[str] | None = None,
        state_id: str | None = None,
    ) -> StateRecord:
        """Persist a payload as the mode's state record.

        Args:
            data: JSON-serializable application payload.
            artifacts: Optional artifact references.
            state_id: Record identifier. Defaults to "current".

        Returns:
            The record as written (with checksum and compression flag).

        Raises:
            ValidationError: If the payload is not JSON-serializable.
            WriteFailureError: If the backup copy or every write attempt failed.
        """
        state_id = state_id or DEFAULT_STATE_ID
        record = self._codec.seal(
            StateRecord(
                id=state_id,
                mode_id=self._mode_id,
                timestamp=datetime.now(UTC),
                data=data,
                artifacts=tuple(artifacts or ()),
                schema_version=self._schema_version,
            )
        )
        content = self._codec.encode(record)
        path = self.state_path(state_id)

        async with self._lock:
            if self._config.backup_enabled:
                await self._backup(state_id)
            await self._write_with_retry(path, content)

        log.info(
            "state.manager.saved",
            mode_id=self._mode_id,
            state_id=state_id,
            compressed=record.compressed,
            size=len(content),
        )
        return record

    async def _backup(self, state_id: str) -> None:
        path = self.state_path(state_id)
        if not await self._files.exists(path):
            return
        try:
            await self._files.copy_file(path, self.backup_path(state_id))
        except OSError as e:
            raise WriteFailureError(
                f"Failed to back up state before saving: {e}",
                operation="backup",
                path=path,
            ) from e

    async def _write_with_retry(self, path: str, content: str) -> None:
        attempts = self._config.max_write_attempts

        @stamina.retry(
            on=OSError,
            attempts=attempts,
            timeout=None,
            wait_initial=self._config.retry_wait_initial,
            wait_max=self._config.retry_wait_max,
            wait_jitter=self._config.retry_wait_initial,
        )
        async def _do_write() -> None:
            await self._files.write_file(path, content, create_dirs=True, atomic=True)

        try:
            await _do_write()
        except OSError as e:
            log.error(
                "state.manager.write_failed",
                mode_id=self._mode_id,
                path=path,
                attempts=attempts,
                error=str(e),
            )
            raise WriteFailureError(
                f"Failed to write state after {attempts} attempts: {e}",
                operation="write",
                path=path,
                details={"attempts": attempts},
            ) from e

    async def load(self, state_id: str | None = None) -> StateRecord | None:
        """Load the mode's state record, recovering from the backup if needed.

        Args:
            state_id: Record identifier. Defaults to "current".

        Returns:
            The verified (and if necessary migrated) record, or None when
            neither the primary nor the backup exists.

        Raises:
            StateCorruptedError: If both the primary and the backup are unusable.
        """
        state_id = state_id or DEFAULT_STATE_ID
        path = self.state_path(state_id)
        backup = self.backup_path(state_id)

        async with self._lock:
            has_primary = await self._files.exists(path)
            has_backup = await self._files.exists(backup)
            if not has_primary and not has_backup:
                log.debug("state.manager.not_found", mode_id=self._mode_id, state_id=state_id)
                return None

            failures: list[str] = []
            record: StateRecord | None = None
            needs_migration = False
            if has_primary:
                try:
                    record, needs_migration = await self._read_verified(path)
                except (OSError, PersistenceError, ValidationError) as e:
                    failures.append(f"primary: {e}")
            else:
                failures.append("primary: missing")

            if record is None:
                log.warning(
                    "state.manager.backup_fallback",
                    mode_id=self._mode_id,
                    state_id=state_id,
                    reason=failures[-1],
                )
                if has_backup:
                    try:
                        record, needs_migration = await self._read_verified(backup)
                    except (OSError, PersistenceError, ValidationError) as e:
                        failures.append(f"backup: {e}")
                else:
                    failures.append("backup: missing")

            if record is None:
                raise StateCorruptedError(
                    f"State '{state_id}' of mode '{self._mode_id}' is unrecoverable: "
                    + "; ".join(failures),
                    operation="load",
                    path=path,
                    details={"failures": failures},
                )

        if needs_migration:
            record = await self._migrate(record)

        log.debug(
            "state.manager.loaded",
            mode_id=self._mode_id,
            state_id=state_id,
            schema_version=record.schema_version,
        )
        return record

    async def _read_verified(self, path: str) -> tuple[StateRecord, bool]:
        record = self._codec.decode(await self._files.read_file(path))
        result = self.validate_state(record)
        if not result.is_valid:
            raise ValidationError(
                f"State record failed validation: {'; '.join(result.errors)}",
                field="state",
                details={"errors": result.errors, "path": path},
            )
        for warning in result.warnings:
            log.debug("state.manager.validation_warning", mode_id=self._mode_id, warning=warning)
        return record, result.needs_migration

    async def _migrate(self, record: StateRecord) -> StateRecord:
        from_version = record.schema_version or LEGACY_SCHEMA_VERSION
        staged = replace(record, schema_version=from_version)
        if self._migrator is not None:
            staged = await self._migrator(staged)

        migrated = replace(staged, schema_version=self._schema_version)
        migrated = replace(migrated, checksum=self._codec.compute_checksum(migrated))
        log.info(
            "state.manager.migrated",
            mode_id=self._mode_id,
            state_id=record.id,
            from_version=from_version,
            to_version=self._schema_version,
        )
        return migrated

    def validate_state(self, record: StateRecord) -> ValidationResult:
        """Validate a record without side effects.

        Args:
            record: The record to check.

        Returns:
            ValidationResult with errors, warnings and the migration verdict.
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not record.id:
            errors.append("State record has no id")
        if record.mode_id != self._mode_id:
            errors.append(
                f"State belongs to mode '{record.mode_id}', expected '{self._mode_id}'"
            )

        if record.checksum is None:
            warnings.append("State record has no checksum")
        elif not self._codec.verify_checksum(record):
            errors.append("Checksum mismatch")

        needs_migration = record.schema_version != self._schema_version
        if record.schema_version is None:
            warnings.append("State record has no schema version (legacy data)")
        elif needs_migration:
            warnings.append(
                f"Schema version {record.schema_version} differs from {self._schema_version}"
            )

        if self._validator is not None:
            try:
                custom = self._validator(record)
            except Exception as e:
                log.warning(
                    "state.manager.validator_failed",
                    mode_id=self._mode_id,
                    state_id=record.id,
                    error=str(e),
                )
                warnings.append(f"Mode state validation raised {type(e).__name__}: {e}")
            else:
                errors.extend(custom.errors)
                warnings.extend(custom.warnings)
                needs_migration = needs_migration or custom.needs_migration

        return ValidationResult.build(
            errors,
            warnings,
            needs_migration=needs_migration,
            current_version=record.schema_version,
            target_version=self._schema_version,
        )

    async def clear(self, state_id: str | None = None) -> int:
        """Delete state records and their backups.

        Args:
            state_id: Record to delete. None deletes every record of the mode.

        Returns:
            Number of files removed.
        """
        async with self._lock:
            if state_id is not None:
                paths = [self.state_path(state_id), self.backup_path(state_id)]
            else:
                names = await self._files.list_files(self.state_dir)
                paths = [
                    f"{self.state_dir}/{name}"
                    for name in names
                    if name.endswith((RECORD_SUFFIX, RECORD_SUFFIX + BACKUP_SUFFIX))
                ]

            removed = 0
            for path in paths:
                if await self._files.delete_file(path):
                    removed += 1

        log.info(
            "state.manager.cleared",
            mode_id=self._mode_id,
            state_id=state_id,
            removed=removed,
        )
        return removed

    async def list_states(self) -> list[str]:
        """List the ids of primary records stored for this mode."""
        names = await self._files.list_files(self.state_dir, suffix=RECORD_SUFFIX)
        return [name.removesuffix(RECORD_SUFFIX) for name in names]
