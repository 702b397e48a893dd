"""State codec - serialization, integrity checksums and compression.

Records are stored as indented JSON documents. When the serialized
``data`` payload exceeds the compression threshold it is replaced by a
base64 string of its zlib-compressed JSON and ``compressed`` is set.

The checksum is a SHA-256 over the canonical (sorted-key) JSON of the
record payload and is computed before compression, so it verifies the
application data itself rather than its on-disk encoding.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import replace
from datetime import datetime
import hashlib
import json
from typing import Any
import zlib

from conductor.core.errors import PersistenceError, ValidationError
from conductor.modes.state.models import StateRecord

COMPRESSION_LEVEL = 6


class StateDecodeError(PersistenceError):
    """Raised when a stored record cannot be parsed or decompressed."""


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StateCodec:
    """Serialize and deserialize state records.

    Example:
        codec = StateCodec(compression_threshold=10_000)
        record = codec.seal(record)
        text = codec.encode(record)
        restored = codec.decode(text)
        assert codec.verify_checksum(restored)
    """

    def __init__(
        self,
        compression_threshold: int = 10_000,
        compression_enabled: bool = True,
    ) -> None:
        self._compression_threshold = compression_threshold
        self._compression_enabled = compression_enabled

    @staticmethod
    def compute_checksum(record: StateRecord) -> str:
        """Compute the SHA-256 checksum of a record's payload."""
        return hashlib.sha256(_canonical_json(record.payload()).encode("utf-8")).hexdigest()

    def verify_checksum(self, record: StateRecord) -> bool:
        """Return True if the record carries a checksum matching its payload."""
        return record.checksum is not None and record.checksum == self.compute_checksum(record)

    def data_size(self, data: dict[str, Any]) -> int:
        """Size in bytes of the canonical serialized payload.

        Raises:
            ValidationError: If the payload is not JSON-serializable.
        """
        try:
            return len(_canonical_json(data).encode("utf-8"))
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"State data is not JSON-serializable: {e}",
                field="data",
            ) from e

    def should_compress(self, data: dict[str, Any]) -> bool:
        """Return True if the payload exceeds the compression threshold."""
        return self._compression_enabled and self.data_size(data) > self._compression_threshold

    def seal(self, record: StateRecord) -> StateRecord:
        """Return a copy of the record with its checksum and compression flag set.

        Raises:
            ValidationError: If the payload is not JSON-serializable.
        """
        compressed = self.should_compress(record.data)
        return replace(record, checksum=self.compute_checksum(record), compressed=compressed)

    @staticmethod
    def compress_data(data: dict[str, Any]) -> str:
        """Compress a payload to a base64 string of zlib-compressed JSON."""
        raw = _canonical_json(data).encode("utf-8")
        return base64.b64encode(zlib.compress(raw, COMPRESSION_LEVEL)).decode("ascii")

    @staticmethod
    def decompress_data(encoded: str) -> dict[str, Any]:
        """Inverse of compress_data.

        Raises:
            StateDecodeError: If the string is not a valid compressed payload.
        """
        try:
            raw = zlib.decompress(base64.b64decode(encoded.encode("ascii"), validate=True))
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, zlib.error, UnicodeError, ValueError) as e:
            raise StateDecodeError(
                f"State data decompression failed: {e}", operation="decompress"
            ) from e

        if not isinstance(data, dict):
            raise StateDecodeError(
                "Decompressed state data is not an object", operation="decompress"
            )
        return data

    def encode(self, record: StateRecord) -> str:
        """Serialize a record to its on-disk JSON text."""
        document = record.to_dict()
        if record.compressed:
            document["data"] = self.compress_data(record.data)
        return json.dumps(document, indent=2, ensure_ascii=False)

    def decode(self, text: str) -> StateRecord:
        """Parse on-disk JSON text into a record, decompressing if needed.

        The returned record keeps ``compressed`` as stored so callers can
        tell how it was persisted.

        Raises:
            StateDecodeError: If the text is not a well-formed record.
        """
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise StateDecodeError(f"Failed to parse state JSON: {e}", operation="parse") from e

        if not isinstance(document, dict):
            raise StateDecodeError("State document is not an object", operation="parse")

        compressed = document.get("compressed", False)
        if not isinstance(compressed, bool):
            raise StateDecodeError("State compressed flag must be a boolean", operation="parse")
        data = document.get("data", {})
        if compressed:
            if not isinstance(data, str):
                raise StateDecodeError(
                    "Compressed state data must be an encoded string", operation="parse"
                )
            data = self.decompress_data(data)
        elif not isinstance(data, dict):
            raise StateDecodeError("State data must be an object", operation="parse")

        try:
            timestamp = datetime.fromisoformat(document["timestamp"])
            mode_id = document["mode_id"]
        except (KeyError, TypeError, ValueError) as e:
            raise StateDecodeError(
                f"State document is missing or has an invalid field: {e}", operation="parse"
            ) from e

        artifacts = document.get("artifacts") or []
        if not isinstance(artifacts, list):
            raise StateDecodeError("State artifacts must be a list", operation="parse")

        schema_version = document.get("schema_version")
        checksum = document.get("checksum")
        for field, value in (("schema_version", schema_version), ("checksum", checksum)):
            if value is not None and not isinstance(value, str):
                raise StateDecodeError(f"State {field} must be a string", operation="parse")

        return StateRecord(
            id=str(document.get("id") or ""),
            mode_id=str(mode_id),
            timestamp=timestamp,
            data=data,
            artifacts=tuple(str(a) for a in artifacts),
            schema_version=schema_version,
            checksum=checksum,
            compressed=compressed,
        )
