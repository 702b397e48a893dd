"""Unit tests for conductor.modes.state.manager module.

Tests cover:
- Save/load round trips below and above the compression threshold
- Backup-based recovery from corrupted primaries
- Schema migration of versioned and legacy records
- Bounded write retries
- Pure state validation with mode hooks
- Clearing and listing records
"""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime
import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from conductor.config.models import StateConfig
from conductor.core.errors import StateCorruptedError, ValidationError, WriteFailureError
from conductor.modes.state.manager import StateManager
from conductor.modes.state.models import StateRecord, ValidationResult
from conductor.persistence.files import FileOperations


class FlakyFiles(FileOperations):
    """File store whose first ``failures`` writes raise OSError."""

    def __init__(self, base_path: Path, failures: int) -> None:
        super().__init__(base_path)
        self.failures = failures
        self.write_attempts = 0

    async def write_file(
        self,
        path: str,
        content: str | bytes,
        *,
        create_dirs: bool = True,
        atomic: bool = True,
    ) -> None:
        self.write_attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("disk busy")
        await super().write_file(path, content, create_dirs=create_dirs, atomic=atomic)


@pytest.fixture
def manager(files: FileOperations, fast_state_config: StateConfig) -> StateManager:
    return StateManager("discovery", "1.0.0", files, config=fast_state_config)


def _payload(size: int) -> dict[str, Any]:
    """Build a nested payload of roughly ``size`` serialized bytes."""
    rows = [{"index": i, "tags": ["a", "b"], "meta": {"ok": True}} for i in range(size // 60)]
    return {"rows": rows, "summary": {"count": len(rows), "label": "ünïcode"}}


class TestRoundTrip:
    """Test save followed by load."""

    @pytest.mark.parametrize("size", [1_000, 50_000])
    async def test_payload_preserved(self, manager: StateManager, size: int) -> None:
        """Payloads below and above the threshold survive a round trip."""
        data = _payload(size)
        saved = await manager.save(data, artifacts=["out/report.md"])
        loaded = await manager.load()

        assert loaded is not None
        assert loaded.data == data
        assert loaded.artifacts == ("out/report.md",)
        assert loaded.schema_version == "1.0.0"
        assert loaded.checksum == saved.checksum
        assert saved.compressed is (size > 10_000)

    async def test_compressed_flag_on_disk(
        self, manager: StateManager, files: FileOperations
    ) -> None:
        """Large payloads are stored compressed on disk."""
        await manager.save(_payload(50_000))
        document = json.loads(await files.read_file("state/discovery/current.json"))
        assert document["compressed"] is True
        assert isinstance(document["data"], str)

    async def test_load_missing_returns_none(self, manager: StateManager) -> None:
        """Loading with neither primary nor backup returns None."""
        assert await manager.load() is None

    async def test_named_state_ids(self, manager: StateManager) -> None:
        """Records with different ids are independent."""
        await manager.save({"v": 1}, state_id="draft")
        await manager.save({"v": 2})
        draft = await manager.load("draft")
        current = await manager.load()
        assert draft is not None and draft.data == {"v": 1}
        assert current is not None and current.data == {"v": 2}

    async def test_non_serializable_payload(self, manager: StateManager) -> None:
        """Saving a payload JSON cannot represent raises ValidationError."""
        with pytest.raises(ValidationError):
            await manager.save({"when": datetime.now(UTC)})


class TestBackupRecovery:
    """Test backup creation and fallback."""

    async def test_backup_holds_previous_save(
        self, manager: StateManager, files: FileOperations
    ) -> None:
        """The backup is the record that existed before the latest save."""
        await manager.save({"version": "first"})
        assert not await files.exists(manager.backup_path())
        await manager.save({"version": "second"})

        backup = manager.codec.decode(await files.read_file(manager.backup_path()))
        assert backup.data == {"version": "first"}

    async def test_corrupted_primary_falls_back(
        self, manager: StateManager, files: FileOperations
    ) -> None:
        """A corrupted primary after two saves loads the first save."""
        await manager.save({"version": "first"})
        await manager.save({"version": "second"})
        await files.write_file(manager.state_path(), "{ truncated")

        loaded = await manager.load()
        assert loaded is not None
        assert loaded.data == {"version": "first"}

    async def test_undecodable_primary_falls_back(
        self, manager: StateManager, files: FileOperations
    ) -> None:
        """A primary holding invalid UTF-8 loads the backup."""
        await manager.save({"v": 1})
        await manager.save({"v": 2})
        (files.base_path / manager.state_path()).write_bytes(b"\xff\xfe garbage")

        loaded = await manager.load()
        assert loaded is not None
        assert loaded.data == {"v": 1}

    async def test_checksum_mismatch_falls_back(
        self, manager: StateManager, files: FileOperations
    ) -> None:
        """A tampered payload fails verification and loads the backup."""
        await manager.save({"version": "first"})
        await manager.save({"version": "second"})
        document = json.loads(await files.read_file(manager.state_path()))
        document["data"]["version"] = "tampered"
        await files.write_file(manager.state_path(), json.dumps(document))

        loaded = await manager.load()
        assert loaded is not None
        assert loaded.data == {"version": "first"}

    async def test_missing_primary_uses_backup(
        self, manager: StateManager, files: FileOperations
    ) -> None:
        """A deleted primary is recovered from the backup."""
        await manager.save({"version": "first"})
        await manager.save({"version": "second"})
        await files.delete_file(manager.state_path())

        loaded = await manager.load()
        assert loaded is not None
        assert loaded.data == {"version": "first"}

    async def test_both_corrupted_raises(
        self, manager: StateManager, files: FileOperations
    ) -> None:
        """StateCorruptedError names the primary and backup failures."""
        await manager.save({"version": "first"})
        await manager.save({"version": "second"})
        await files.write_file(manager.state_path(), "garbage")
        await files.write_file(manager.backup_path(), "more garbage")

        with pytest.raises(StateCorruptedError) as exc_info:
            await manager.load()
        assert "primary:" in exc_info.value.message
        assert "backup:" in exc_info.value.message
        assert len(exc_info.value.details["failures"]) == 2

    async def test_foreign_record_rejected(
        self, manager: StateManager, files: FileOperations
    ) -> None:
        """A record owned by another mode fails validation."""
        other = StateManager("planning", "1.0.0", files)
        record = other.codec.seal(StateRecord(id="current", mode_id="planning", data={}))
        await files.write_file(manager.state_path(), other.codec.encode(record))

        with pytest.raises(StateCorruptedError, match="expected 'discovery'"):
            await manager.load()

    async def test_backup_disabled(self, files: FileOperations) -> None:
        """No backup is written when backups are disabled."""
        config = StateConfig(backup_enabled=False, retry_wait_initial=0, retry_wait_max=0)
        manager = StateManager("discovery", "1.0.0", files, config=config)
        await manager.save({"n": 1})
        await manager.save({"n": 2})
        assert not await files.exists(manager.backup_path())


class TestMigration:
    """Test schema migration on load."""

    async def test_versioned_record_migrated_once(
        self, files: FileOperations, fast_state_config: StateConfig
    ) -> None:
        """A 1.0.0 record loaded by a 2.0.0 mode runs the hook once."""
        await StateManager("discovery", "1.0.0", files, config=fast_state_config).save(
            {"answers": 3}
        )

        migrator = AsyncMock(side_effect=lambda r: replace(r, data={**r.data, "migrated": True}))
        manager = StateManager(
            "discovery", "2.0.0", files, config=fast_state_config, migrator=migrator
        )
        loaded = await manager.load()

        assert loaded is not None
        migrator.assert_awaited_once()
        assert migrator.await_args.args[0].schema_version == "1.0.0"
        assert loaded.schema_version == "2.0.0"
        assert loaded.data == {"answers": 3, "migrated": True}
        assert manager.codec.verify_checksum(loaded)

    async def test_migration_does_not_resave(
        self, files: FileOperations, fast_state_config: StateConfig
    ) -> None:
        """The stored record keeps its old version until the next save."""
        old = StateManager("discovery", "1.0.0", files, config=fast_state_config)
        await old.save({"answers": 3})
        await StateManager("discovery", "2.0.0", files, config=fast_state_config).load()

        stored = old.codec.decode(await files.read_file(old.state_path()))
        assert stored.schema_version == "1.0.0"

    async def test_legacy_record_stamped_before_hook(
        self, files: FileOperations, fast_state_config: StateConfig
    ) -> None:
        """Unversioned records reach the hook stamped 1.0.0."""
        legacy = {
            "id": "current",
            "mode_id": "discovery",
            "timestamp": "2025-05-01T12:00:00+00:00",
            "data": {"notes": ["old"]},
        }
        await files.write_file("state/discovery/current.json", json.dumps(legacy))
        seen: list[str | None] = []

        async def migrate(record: StateRecord) -> StateRecord:
            seen.append(record.schema_version)
            return record

        manager = StateManager(
            "discovery", "2.0.0", files, config=fast_state_config, migrator=migrate
        )
        loaded = await manager.load()

        assert seen == ["1.0.0"]
        assert loaded is not None
        assert loaded.schema_version == "2.0.0"
        assert loaded.data == {"notes": ["old"]}
        assert loaded.checksum is not None

    async def test_same_version_skips_hook(
        self, files: FileOperations, fast_state_config: StateConfig
    ) -> None:
        """No migration runs when versions match."""
        migrator = AsyncMock()
        manager = StateManager(
            "discovery", "1.0.0", files, config=fast_state_config, migrator=migrator
        )
        await manager.save({"x": 1})
        await manager.load()
        migrator.assert_not_awaited()

    async def test_validator_can_request_migration(
        self, files: FileOperations, fast_state_config: StateConfig
    ) -> None:
        """A mode hook asking for migration runs the migrator on a same-version record."""

        def outdated_shape(record: StateRecord) -> ValidationResult:
            return ValidationResult.build(needs_migration="notes" not in record.data)

        async def add_notes(record: StateRecord) -> StateRecord:
            return replace(record, data={**record.data, "notes": []})

        migrator = AsyncMock(side_effect=add_notes)
        manager = StateManager(
            "discovery",
            "1.0.0",
            files,
            config=fast_state_config,
            validator=outdated_shape,
            migrator=migrator,
        )
        await manager.save({"x": 1})

        loaded = await manager.load()
        migrator.assert_awaited_once()
        assert loaded is not None
        assert loaded.data == {"x": 1, "notes": []}
        assert loaded.schema_version == "1.0.0"


class TestWriteRetry:
    """Test bounded write retries."""

    async def test_transient_failures_retried(
        self, tmp_path: Path, fast_state_config: StateConfig
    ) -> None:
        """Writes succeed once a transient failure clears."""
        files = FlakyFiles(tmp_path, failures=2)
        manager = StateManager("discovery", "1.0.0", files, config=fast_state_config)

        await manager.save({"n": 1})

        assert files.write_attempts == 3
        loaded = await manager.load()
        assert loaded is not None and loaded.data == {"n": 1}

    async def test_exhausted_retries_raise_write_failure(
        self, tmp_path: Path, fast_state_config: StateConfig
    ) -> None:
        """After max_write_attempts failures the save raises WriteFailureError."""
        files = FlakyFiles(tmp_path, failures=0)
        manager = StateManager("discovery", "1.0.0", files, config=fast_state_config)
        await manager.save({"n": 1})

        files.failures = 10
        files.write_attempts = 0
        with pytest.raises(WriteFailureError) as exc_info:
            await manager.save({"n": 2})

        assert files.write_attempts == fast_state_config.max_write_attempts
        assert isinstance(exc_info.value.__cause__, OSError)
        # The backup was taken once and the primary still holds the first save.
        loaded = await manager.load()
        assert loaded is not None and loaded.data == {"n": 1}


class TestValidateState:
    """Test pure state validation."""

    def test_valid_record(self, manager: StateManager) -> None:
        """A sealed record of the current version is valid."""
        record = manager.codec.seal(
            StateRecord(id="current", mode_id="discovery", data={}, schema_version="1.0.0")
        )
        result = manager.validate_state(record)
        assert result.is_valid
        assert not result.needs_migration
        assert result.target_version == "1.0.0"

    def test_missing_checksum_is_warning(self, manager: StateManager) -> None:
        """A record without checksum is valid with a warning."""
        record = StateRecord(id="current", mode_id="discovery", schema_version="1.0.0")
        result = manager.validate_state(record)
        assert result.is_valid
        assert any("checksum" in w for w in result.warnings)

    def test_errors_collected(self, manager: StateManager) -> None:
        """Empty id, wrong owner and bad checksum are all reported."""
        record = StateRecord(id="", mode_id="planning", checksum="0" * 64)
        result = manager.validate_state(record)
        assert not result.is_valid
        assert len(result.errors) == 3
        assert result.needs_migration
        assert result.current_version is None

    def test_custom_validator_merged(self, files: FileOperations) -> None:
        """Errors from the mode hook make the record invalid."""

        def require_step(record: StateRecord) -> ValidationResult:
            errors = [] if "step" in record.data else ["step is required"]
            return ValidationResult.build(errors, ["custom warning"])

        manager = StateManager("discovery", "1.0.0", files, validator=require_step)
        record = manager.codec.seal(
            StateRecord(id="current", mode_id="discovery", data={}, schema_version="1.0.0")
        )
        result = manager.validate_state(record)
        assert result.errors == ["step is required"]
        assert "custom warning" in result.warnings

    async def test_raising_validator_becomes_warning(
        self, files: FileOperations, fast_state_config: StateConfig
    ) -> None:
        """A mode hook that raises is reported as a warning, not propagated."""

        def broken(record: StateRecord) -> ValidationResult:
            raise KeyError("legacy_field")

        manager = StateManager(
            "discovery", "1.0.0", files, config=fast_state_config, validator=broken
        )
        record = manager.codec.seal(
            StateRecord(id="current", mode_id="discovery", data={}, schema_version="1.0.0")
        )
        result = manager.validate_state(record)
        assert result.is_valid
        assert any("KeyError" in w for w in result.warnings)

        await manager.save({"x": 1})
        loaded = await manager.load()
        assert loaded is not None and loaded.data == {"x": 1}


class TestClearAndList:
    """Test clear and list_states."""

    async def test_list_states(self, manager: StateManager) -> None:
        """list_states returns primary record ids only."""
        await manager.save({"n": 1})
        await manager.save({"n": 2})
        await manager.save({"n": 3}, state_id="draft")
        assert await manager.list_states() == ["current", "draft"]

    async def test_clear_single_record(self, manager: StateManager) -> None:
        """clear(state_id) removes the primary and its backup."""
        await manager.save({"n": 1})
        await manager.save({"n": 2})
        await manager.save({"n": 3}, state_id="draft")

        assert await manager.clear("current") == 2
        assert await manager.load() is None
        assert await manager.list_states() == ["draft"]

    async def test_clear_all(self, manager: StateManager) -> None:
        """clear() removes every record of the mode."""
        await manager.save({"n": 1})
        await manager.save({"n": 2}, state_id="draft")
        assert await manager.clear() == 2
        assert await manager.list_states() == []


class TestConcurrency:
    """Test serialization of concurrent calls."""

    async def test_concurrent_saves_apply_in_order(
        self, manager: StateManager, files: FileOperations
    ) -> None:
        """Saves issued together apply in call order."""
        await asyncio.gather(*(manager.save({"n": n}) for n in range(5)))

        loaded = await manager.load()
        assert loaded is not None and loaded.data == {"n": 4}
        backup = manager.codec.decode(await files.read_file(manager.backup_path()))
        assert backup.data == {"n": 3}
