"""
carevault: encrypted state storage for the clinical toolkit.

Two layers:
1. CryptoSession: session key derivation and AES-256-GCM envelope (the lock)
2. PartitionedStorage: versioned records in a key-value store, with the
   sensitive partitions (patients, assessments, vitals) sealed by the session

The session key lives in memory only. If the platform cannot provide the
primitives, storage keeps working unencrypted and says so in each record.

Usage:
    from carevault import CryptoSession, PartitionedStorage, FileStore
    storage = PartitionedStorage(FileStore("./clinical-data"), CryptoSession())
    await storage.set_item("clinical-toolkit-storage", {"patients": [...]})
"""

from carevault.envelope import CryptoSession
from carevault.storage import PartitionedStorage, StorageMode, create_storage_adapter
from carevault.config import EnvelopeConfig, StorageConfig
from carevault.outcome import Encrypted, Plaintext, Unavailable, EncryptionOutcome
from carevault.partitions import Partition, Sensitivity, SealedPartition, PlainPartition
from carevault.provider import CryptoProvider, CryptographyProvider
from carevault.backends import KeyValueStore, MemoryStore, FileStore
from carevault.errors import CarevaultError, ConfigError, StorageBackendError

__version__ = "0.1.0"
__all__ = [
    "CryptoSession",
    "PartitionedStorage",
    "StorageMode",
    "create_storage_adapter",
    "EnvelopeConfig",
    "StorageConfig",
    "Encrypted",
    "Plaintext",
    "Unavailable",
    "EncryptionOutcome",
    "Partition",
    "Sensitivity",
    "SealedPartition",
    "PlainPartition",
    "CryptoProvider",
    "CryptographyProvider",
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
    "CarevaultError",
    "ConfigError",
    "StorageBackendError",
]
