"""
Persisted state envelope and its metadata.

Every record in the backing store is a JSON document:

  {
    "metadata": {"schemaVersion": 1, "encrypted": true, "writtenAt": 1760000000000},
    "payload":  { ...state, sensitive partitions as ciphertext strings... }
  }

Readers trust metadata.encrypted; they never guess from the payload.
"""

import json
import time
from dataclasses import dataclass
from typing import Any

# Payload field names, current first
LEGACY_PAYLOAD_KEYS = ("payload", "data")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class StorageMetadata:
    schema_version: int
    encrypted: bool
    written_at: int

    @classmethod
    def create(cls, schema_version: int, encrypted: bool) -> "StorageMetadata":
        return cls(schema_version=schema_version, encrypted=encrypted, written_at=now_ms())

    def to_dict(self) -> dict:
        return {
            "schemaVersion": self.schema_version,
            "encrypted": self.encrypted,
            "writtenAt": self.written_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StorageMetadata | None":
        """Parse metadata; None if the shape is not ours."""
        if not isinstance(data, dict):
            return None
        # "version" and "timestamp" are the field names of 0.x records
        version = data.get("schemaVersion", data.get("version"))
        encrypted = data.get("encrypted")
        written_at = data.get("writtenAt", data.get("timestamp", 0))
        if isinstance(version, bool) or not isinstance(version, int):
            return None
        if not isinstance(encrypted, bool):
            return None
        if isinstance(written_at, bool) or not isinstance(written_at, int):
            written_at = 0
        return cls(schema_version=version, encrypted=encrypted, written_at=written_at)


@dataclass(frozen=True)
class PersistedEnvelope:
    metadata: StorageMetadata
    payload: Any

    def to_dict(self) -> dict:
        return {"metadata": self.metadata.to_dict(), "payload": self.payload}

    def to_text(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_document(cls, document: Any) -> "PersistedEnvelope | None":
        """
        Recognize a parsed JSON document as an envelope.

        Accepts the 0.x field names ("data", "version", "timestamp").
        Returns None for anything else: records written before versioning,
        or raw fallback writes.
        """
        if not isinstance(document, dict) or len(document) != 2:
            return None
        payload_key = next((k for k in LEGACY_PAYLOAD_KEYS if k in document), None)
        if payload_key is None or "metadata" not in document:
            return None
        metadata = StorageMetadata.from_dict(document["metadata"])
        if metadata is None:
            return None
        return cls(metadata=metadata, payload=document[payload_key])
