"""Persistence primitives for Conductor."""

from conductor.persistence.files import FileOperations, FileStore

__all__ = ["FileOperations", "FileStore"]
