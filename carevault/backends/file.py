"""
File store: one file per key in a directory.

Writes go to a temporary file first and are moved into place with
os.replace, so a reader sees either the old record or the new one.
Blocking file I/O runs in a worker thread.
"""

import asyncio
import os
import tempfile
from pathlib import Path
from urllib.parse import quote, unquote

from carevault.backends.base import KeyValueStore
from carevault.errors import StorageBackendError

RECORD_SUFFIX = ".record"


class FileStore(KeyValueStore):
    """
    Directory-backed store.

    Args:
        storage_dir: Directory holding one record file per key.
    """

    def __init__(self, storage_dir: str | Path):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not key:
            raise StorageBackendError("empty storage key")
        return self.storage_dir / f"{quote(key, safe='')}{RECORD_SUFFIX}"

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, self._path(key))

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, self._path(key), value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._unlink, self._path(key))

    async def clear(self) -> None:
        for path in await asyncio.to_thread(self._records):
            await asyncio.to_thread(self._unlink, path)

    async def keys(self) -> list[str]:
        paths = await asyncio.to_thread(self._records)
        return [unquote(p.name[:-len(RECORD_SUFFIX)]) for p in paths]

    def _records(self) -> list[Path]:
        try:
            return sorted(self.storage_dir.glob(f"*{RECORD_SUFFIX}"))
        except OSError as e:
            raise StorageBackendError(f"cannot list {self.storage_dir}: {e}") from e

    @staticmethod
    def _read(path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageBackendError(f"cannot read {path.name}: {e}") from e

    @staticmethod
    def _write(path: Path, value: str):
        tmp = None
        try:
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=RECORD_SUFFIX + ".part")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)
        except OSError as e:
            if tmp is not None:
                try:
                    os.unlink(tmp)
                except FileNotFoundError:
                    pass
            raise StorageBackendError(f"cannot write {path.name}: {e}") from e

    @staticmethod
    def _unlink(path: Path):
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageBackendError(f"cannot remove {path.name}: {e}") from e
