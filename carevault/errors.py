"""
Exceptions raised by carevault.

Crypto unavailability, tampering and format drift are not exceptions here;
they are absorbed into booleans, None and outcomes. Only configuration
mistakes and backing-store failures reach the caller.
"""


class CarevaultError(Exception):
    """Base class for all carevault errors."""


class ConfigError(CarevaultError, ValueError):
    """An EnvelopeConfig or StorageConfig value is out of range."""


class StorageBackendError(CarevaultError):
    """The backing key-value store failed to read or write."""
