"""
Partitioned Storage Adapter: encrypted persistence for the clinical store.

Wraps a backing key-value store with the Crypto Envelope.

Flow for writing state:
1. Locate the partitions (top level, or under "state" for a persist middleware)
2. Seal every sensitive partition present with the session key
3. Stamp metadata: schema version, encrypted flag, write time
4. Write the complete envelope in a single store call

Flow for reading state:
1. Read and parse the record; unversioned records come back as-is
2. If metadata says encrypted, open each sensitive ciphertext partition
3. Partitions that cannot be opened stay as their ciphertext string

If the envelope cannot be set up the adapter runs unencrypted for the rest
of the session. Data is always stored; it just loses the extra layer.
"""

import asyncio
import inspect
import json
from enum import Enum
from typing import Any

import structlog

from carevault.backends.base import KeyValueStore
from carevault.backends.memory import MemoryStore
from carevault.config import StorageConfig
from carevault.envelope import CryptoSession
from carevault.errors import StorageBackendError
from carevault.metadata import PersistedEnvelope, StorageMetadata
from carevault.outcome import Encrypted, Plaintext, Unavailable
from carevault.partitions import (
    PartitionValue,
    PlainPartition,
    SealedPartition,
    Sensitivity,
    assemble,
    classify,
    locate_partitions,
    replace_partitions,
)

logger = structlog.get_logger(__name__)


class StorageMode(Enum):
    """Per-session state of the adapter."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    ENCRYPTED = "encrypted"
    UNENCRYPTED = "unencrypted"


_TERMINAL_MODES = (StorageMode.ENCRYPTED, StorageMode.UNENCRYPTED)


async def _resolve(result):
    """Await the result of a store method if it is awaitable."""
    if inspect.isawaitable(result):
        return await result
    return result


class PartitionedStorage:
    """
    Storage adapter that encrypts the sensitive partitions of a state object.

    The state object keeps its shape across a round trip; only sensitive
    partitions are swapped for ciphertext while at rest.

    Args:
        store: Backing store. Any object with get/set/remove/clear, sync or
            async; a KeyValueStore is the usual choice.
        session: The application's CryptoSession. A new one is created if
            not given.
        config: Adapter options.
    """

    def __init__(self, store: KeyValueStore, session: CryptoSession | None = None,
                 config: StorageConfig | None = None):
        self.store = store
        self.session = session if session is not None else CryptoSession()
        self.config = config or StorageConfig()
        self._mode = StorageMode.UNINITIALIZED
        self._init_lock = asyncio.Lock()

        # Stats
        self.writes = 0
        self.reads = 0
        self.fallback_writes = 0
        self.unreadable_partitions = 0

    @property
    def mode(self) -> StorageMode:
        return self._mode

    @property
    def encrypted(self) -> bool:
        """True when sensitive partitions are being encrypted."""
        return self._mode is StorageMode.ENCRYPTED

    async def initialize(self) -> bool:
        """
        Bring up the envelope, or settle on unencrypted mode.

        Runs once per adapter; later and concurrent calls return at once.

        Returns:
            True. The adapter is always operational in one of the two modes.
        """
        if self._mode in _TERMINAL_MODES:
            return True

        async with self._init_lock:
            if self._mode in _TERMINAL_MODES:
                return True

            self._mode = StorageMode.INITIALIZING
            try:
                ready = await self._start_encryption()
            except Exception as e:
                logger.error("encryption_setup_error", error=type(e).__name__)
                ready = False

            self._mode = StorageMode.ENCRYPTED if ready else StorageMode.UNENCRYPTED
            logger.info("storage_initialized", mode=self._mode.value)
            return True

    async def _start_encryption(self) -> bool:
        if not self.config.encryption_enabled:
            logger.info("encryption_disabled_by_config")
            return False

        if not await self.session.initialize():
            logger.warning("encryption_unavailable", reason="initialize_failed")
            return False

        if not await self.session.validate():
            logger.warning("encryption_unavailable", reason="self_test_failed")
            self.session.clear()
            return False

        return True

    async def _store_call(self, method, *args):
        try:
            return await _resolve(method(*args))
        except StorageBackendError:
            raise
        except Exception as e:
            name = getattr(method, "__name__", "store")
            raise StorageBackendError(f"{name} failed: {type(e).__name__}") from e

    # ── writing ──────────────────────────────────────────────────────

    async def _seal_partitions(self, container: dict) -> list[PartitionValue] | None:
        """
        Turn a partition container into partition values.

        Returns None if any sensitive partition could not be encrypted; the
        caller then writes everything in the clear and says so.
        """
        values = []
        for name, value in container.items():
            if value is None or classify(name, self.config.sensitive_partitions) is Sensitivity.PLAIN:
                values.append(PlainPartition(name, value))
                continue

            outcome = await self.session.seal(value)
            if isinstance(outcome, Encrypted):
                values.append(SealedPartition(name, outcome.text))
            elif isinstance(outcome, Plaintext):
                logger.warning("session_key_missing", partition=name)
                return None
            elif isinstance(outcome, Unavailable):
                logger.warning("partition_encryption_failed", partition=name, reason=outcome.reason)
                return None
            else:
                raise TypeError(f"unexpected encryption outcome {type(outcome).__name__}")
        return values

    async def _build_record(self, state: Any) -> str:
        payload = state
        encrypted = False

        if self.encrypted and isinstance(state, dict):
            container = locate_partitions(state)
            values = await self._seal_partitions(container)
            if values is not None:
                payload = replace_partitions(state, assemble(container, values))
                encrypted = True

        metadata = StorageMetadata.create(self.config.schema_version, encrypted)
        return PersistedEnvelope(metadata=metadata, payload=payload).to_text()

    async def set_item(self, key: str, state: Any) -> None:
        """
        Persist a state object under key.

        If the envelope cannot be built or written, the unprocessed state is
        written once as a raw fallback.

        Raises:
            StorageBackendError: If the backing store fails the fallback write.
        """
        await self.initialize()

        try:
            text = await self._build_record(state)
            await self._store_call(self.store.set, key, text)
        except Exception as e:
            logger.error("storage_write_failed", key=key, error=type(e).__name__)
            try:
                raw = json.dumps(state, ensure_ascii=False)
            except (TypeError, ValueError) as err:
                logger.error("raw_fallback_unserializable", key=key, error=type(err).__name__)
                return
            await self._store_call(self.store.set, key, raw)
            self.fallback_writes += 1
            logger.warning("raw_fallback_written", key=key)
            return

        self.writes += 1

    # ── reading ──────────────────────────────────────────────────────

    async def _open_partitions(self, key: str, payload: Any) -> Any:
        if not isinstance(payload, dict):
            return payload

        container = locate_partitions(payload)
        values = []
        for name, value in container.items():
            if not isinstance(value, str) or classify(name, self.config.sensitive_partitions) is Sensitivity.PLAIN:
                values.append(PlainPartition(name, value))
                continue

            recovered = await self.session.decrypt(value)
            if recovered is None:
                self.unreadable_partitions += 1
                logger.warning("partition_unreadable", key=key, partition=name)
                values.append(SealedPartition(name, value))
            else:
                values.append(PlainPartition(name, recovered))

        return replace_partitions(payload, assemble(container, values))

    async def get_item(self, key: str) -> Any:
        """
        Load the state object stored under key.

        Returns:
            The state object, or None if absent or not parseable. Sensitive
            partitions that cannot be decrypted are returned as their
            ciphertext string.

        Raises:
            StorageBackendError: If the backing store fails the read.
        """
        await self.initialize()

        raw = await self._store_call(self.store.get, key)
        if not raw:
            return None
        self.reads += 1

        try:
            document = json.loads(raw)
        except ValueError:
            logger.warning("stored_record_not_json", key=key)
            return None

        envelope = PersistedEnvelope.from_document(document)
        if envelope is None:
            logger.info("stored_record_unversioned", key=key)
            return document

        if envelope.metadata.schema_version != self.config.schema_version:
            logger.info(
                "schema_version_mismatch",
                key=key,
                stored=envelope.metadata.schema_version,
                current=self.config.schema_version,
            )

        if not envelope.metadata.encrypted:
            return envelope.payload

        return await self._open_partitions(key, envelope.payload)

    async def remove_item(self, key: str) -> None:
        await self._store_call(self.store.remove, key)

    async def clear(self) -> None:
        """Wipe the backing store and discard the session key."""
        try:
            await self._store_call(self.store.clear)
        finally:
            self.session.clear()
            logger.info("storage_cleared")

    # ── reporting ────────────────────────────────────────────────────

    async def usage(self, prefix: str | None = None) -> dict:
        """
        Bytes held by the store, against the configured quota.

        Args:
            prefix: Only count keys starting with this prefix.
        """
        if not hasattr(self.store, "keys"):
            raise StorageBackendError("store cannot list keys")

        counted = []
        used = 0
        for key in await self._store_call(self.store.keys):
            if prefix and not key.startswith(prefix):
                continue
            value = await self._store_call(self.store.get, key)
            if value:
                used += len(value.encode("utf-8"))
                counted.append(key)

        quota = self.config.quota_bytes
        return {
            "used_bytes": used,
            "quota_bytes": quota,
            "percentage": round(used / quota * 100, 2),
            "keys": counted,
        }

    def stats(self) -> dict:
        """Operational counters."""
        return {
            "mode": self._mode.value,
            "encryption_available": self.session.is_available(),
            "writes": self.writes,
            "reads": self.reads,
            "fallback_writes": self.fallback_writes,
            "unreadable_partitions": self.unreadable_partitions,
        }


def create_storage_adapter(store: KeyValueStore | None = None,
                           session: CryptoSession | None = None,
                           **options) -> PartitionedStorage:
    """
    Build an adapter with the clinical store defaults.

    Args:
        store: Backing store. Defaults to a fresh MemoryStore.
        session: Crypto session. Defaults to a new CryptoSession.
        **options: StorageConfig fields (encryption_enabled, storage_key,
            schema_version, sensitive_partitions, quota_bytes).
    """
    return PartitionedStorage(
        store if store is not None else MemoryStore(),
        session=session,
        config=StorageConfig(**options),
    )
