"""
Configuration for the crypto envelope and the storage adapter.

Defaults live in module constants; integrators override them per instance
or through CAREVAULT_* environment variables.
"""

import os
from dataclasses import dataclass, field

from carevault.errors import ConfigError
from carevault.partitions import DEFAULT_SENSITIVE, Partition


# Key derivation and cipher parameters
KDF_ITERATIONS = 100_000
SALT_SIZE = 16
IV_SIZE = 12      # AES-GCM standard
MIN_IV_SIZE = 12
KEY_SIZE = 32     # 256 bits, fixed

# Storage defaults
STORAGE_KEY = "clinical-toolkit-storage"
SCHEMA_VERSION = 1
QUOTA_BYTES = 5 * 1024 * 1024  # what browsers typically grant local storage


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EnvelopeConfig:
    """Parameters of key derivation and the ciphertext wire format."""
    kdf_iterations: int = KDF_ITERATIONS
    salt_size: int = SALT_SIZE
    iv_size: int = IV_SIZE

    def __post_init__(self):
        if self.kdf_iterations < 1:
            raise ConfigError("kdf_iterations must be positive")
        if self.salt_size < 8:
            raise ConfigError("salt_size must be at least 8 bytes")
        if self.iv_size < MIN_IV_SIZE:
            raise ConfigError(f"iv_size must be at least {MIN_IV_SIZE} bytes")

    @property
    def key_size(self) -> int:
        return KEY_SIZE

    @classmethod
    def from_env(cls) -> "EnvelopeConfig":
        return cls(
            kdf_iterations=_env_int("CAREVAULT_KDF_ITERATIONS", KDF_ITERATIONS),
            salt_size=_env_int("CAREVAULT_SALT_SIZE", SALT_SIZE),
            iv_size=_env_int("CAREVAULT_IV_SIZE", IV_SIZE),
        )


@dataclass(frozen=True)
class StorageConfig:
    """
    Options of the partitioned storage adapter.

    Args:
        encryption_enabled: Route sensitive partitions through the envelope.
        storage_key: Default record name for the clinical store.
        schema_version: Version stamped into every written envelope.
        sensitive_partitions: Partitions to encrypt; must be known partitions.
        quota_bytes: Budget reported by usage().
    """
    encryption_enabled: bool = True
    storage_key: str = STORAGE_KEY
    schema_version: int = SCHEMA_VERSION
    sensitive_partitions: frozenset = field(default_factory=lambda: DEFAULT_SENSITIVE)
    quota_bytes: int = QUOTA_BYTES

    def __post_init__(self):
        if not self.storage_key:
            raise ConfigError("storage_key must not be empty")
        if self.schema_version < 1:
            raise ConfigError("schema_version must be >= 1")
        if self.quota_bytes <= 0:
            raise ConfigError("quota_bytes must be positive")

        resolved = set()
        for name in self.sensitive_partitions:
            try:
                resolved.add(Partition(name))
            except ValueError:
                raise ConfigError(f"unknown partition {name!r}") from None
        object.__setattr__(self, "sensitive_partitions", frozenset(resolved))

    @classmethod
    def from_env(cls) -> "StorageConfig":
        options = {
            "encryption_enabled": _env_bool("CAREVAULT_ENCRYPTION_ENABLED", True),
            "storage_key": os.getenv("CAREVAULT_STORAGE_KEY") or STORAGE_KEY,
            "schema_version": _env_int("CAREVAULT_SCHEMA_VERSION", SCHEMA_VERSION),
            "quota_bytes": _env_int("CAREVAULT_QUOTA_BYTES", QUOTA_BYTES),
        }
        sensitive = os.getenv("CAREVAULT_SENSITIVE_PARTITIONS")
        if sensitive:
            options["sensitive_partitions"] = frozenset(
                name.strip() for name in sensitive.split(",") if name.strip()
            )
        return cls(**options)
