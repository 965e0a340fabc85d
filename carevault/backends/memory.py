"""
In-memory store. Behaves like browser local storage within one process;
everything is gone when the process exits.
"""

from carevault.backends.base import KeyValueStore


class MemoryStore(KeyValueStore):
    """Dict-backed store for tests and ephemeral sessions."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()

    async def keys(self) -> list[str]:
        return list(self._data)

    def raw(self, key: str) -> str | None:
        """Synchronous peek at a stored record."""
        return self._data.get(key)

    def __len__(self):
        return len(self._data)
