"""
Backing stores for the partitioned storage adapter.
Each store keeps durable text records addressed by key.
"""

from carevault.backends.base import KeyValueStore
from carevault.backends.memory import MemoryStore
from carevault.backends.file import FileStore

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
]
