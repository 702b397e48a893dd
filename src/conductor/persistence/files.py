"""File operations - the persistence primitive used by modes.

This module provides:
- FileStore: The narrow protocol the state engine and modes depend on
- FileOperations: Local filesystem implementation rooted at a project
  directory, with atomic writes (temp file + fsync + rename)

All paths are relative to the store root. Paths that would escape the
root are rejected.
"""

from __future__ import annotations

import os
from pathlib import Path
import shutil
from typing import Protocol, runtime_checkable
from uuid import uuid4

from conductor.core.errors import PersistenceError, ValidationError
from conductor.observability.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class FileStore(Protocol):
    """Protocol for the persistence primitive consumed by modes."""

    async def exists(self, path: str) -> bool: ...

    async def read_file(self, path: str) -> str: ...

    async def write_file(
        self,
        path: str,
        content: str | bytes,
        *,
        create_dirs: bool = True,
        atomic: bool = True,
    ) -> None: ...

    async def delete_file(self, path: str) -> bool: ...

    async def copy_file(self, source: str, destination: str) -> None: ...

    async def list_files(self, directory: str, suffix: str | None = None) -> list[str]: ...


class FileOperations:
    """Local filesystem store rooted at a base directory.

    Example:
        files = FileOperations(Path(".conductor"))
        await files.write_file("state/discovery/current.json", payload)
        content = await files.read_file("state/discovery/current.json")
    """

    def __init__(self, base_path: str | Path) -> None:
        """Initialize the store.

        Args:
            base_path: Root directory for every relative path.
        """
        self._base_path = Path(base_path).resolve()

    @property
    def base_path(self) -> Path:
        """Get the store root."""
        return self._base_path

    def resolve(self, path: str) -> Path:
        """Resolve a relative path inside the store root.

        Raises:
            ValidationError: If the path is absolute or escapes the root.
        """
        if not path or Path(path).is_absolute():
            raise ValidationError(
                "Store paths must be non-empty and relative", field="path", value=path
            )

        full_path = (self._base_path / path).resolve()
        if not full_path.is_relative_to(self._base_path):
            raise ValidationError("Path escapes the store root", field="path", value=path)
        return full_path

    async def initialize(self) -> None:
        """Create the store root. Idempotent."""
        self._base_path.mkdir(parents=True, exist_ok=True)

    async def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    async def read_file(self, path: str) -> str:
        """Read a UTF-8 text file.

        Raises:
            FileNotFoundError: If the file does not exist.
            PersistenceError: If the content is not valid UTF-8.
        """
        try:
            return self.resolve(path).read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise PersistenceError(
                f"File is not valid UTF-8: {e.reason} at byte {e.start}",
                operation="read",
                path=path,
            ) from e

    async def write_file(
        self,
        path: str,
        content: str | bytes,
        *,
        create_dirs: bool = True,
        atomic: bool = True,
    ) -> None:
        """Write a file.

        Args:
            path: Relative destination path.
            content: Text (written as UTF-8) or raw bytes.
            create_dirs: Create missing parent directories.
            atomic: Write to a temp file, fsync, then rename over the target.
        """
        full_path = self.resolve(path)
        data = content.encode("utf-8") if isinstance(content, str) else content

        if create_dirs:
            full_path.parent.mkdir(parents=True, exist_ok=True)

        if not atomic:
            full_path.write_bytes(data)
            log.debug("persistence.file.written", path=path, size=len(data))
            return

        temp_path = full_path.with_name(f".{full_path.name}.{uuid4().hex[:8]}.tmp")
        try:
            with open(temp_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, full_path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

        log.debug("persistence.file.written", path=path, size=len(data), atomic=True)

    async def delete_file(self, path: str) -> bool:
        """Delete a file.

        Returns:
            True if a file was removed, False if it did not exist.
        """
        full_path = self.resolve(path)
        if not full_path.exists():
            return False
        full_path.unlink()
        log.debug("persistence.file.deleted", path=path)
        return True

    async def copy_file(self, source: str, destination: str) -> None:
        """Copy a file, creating the destination directory if needed."""
        source_path = self.resolve(source)
        destination_path = self.resolve(destination)
        destination_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source_path, destination_path)
        log.debug("persistence.file.copied", source=source, destination=destination)

    async def list_files(self, directory: str, suffix: str | None = None) -> list[str]:
        """List file names directly inside a directory.

        Args:
            directory: Relative directory path.
            suffix: Only include names ending with this suffix.

        Returns:
            Sorted file names (not paths). Empty if the directory is missing.
        """
        full_path = self.resolve(directory)
        if not full_path.is_dir():
            return []

        names = [
            entry.name
            for entry in full_path.iterdir()
            if entry.is_file() and not entry.name.endswith(".tmp")
        ]
        if suffix is not None:
            names = [name for name in names if name.endswith(suffix)]
        return sorted(names)
