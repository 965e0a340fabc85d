"""
Base class for backing key-value stores.
Every store the adapter persists into implements this interface.
"""

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """
    Durable text records addressed by key, one key at a time.

    Implementations raise StorageBackendError when the underlying medium
    fails; the adapter lets that propagate to its caller.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the text stored under key, or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Replace the record under key in a single write."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete the record under key. Missing keys are not an error."""

    @abstractmethod
    async def clear(self) -> None:
        """Delete every record."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """List stored keys."""
