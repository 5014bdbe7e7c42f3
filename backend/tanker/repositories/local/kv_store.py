# backend/tanker/repositories/local/kv_store.py
"""
On-device key-value storage.

The mobile client persists one JSON string per key. FileKeyValueStore keeps
one file per key inside a directory; InMemoryKeyValueStore backs tests and
throwaway sessions.
"""

import asyncio
from abc import ABC, abstractmethod
import logging
import os
from pathlib import Path
import tempfile
from typing import Dict, List, Optional

from ...core.exceptions import TransientStorageException

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """Return the raw value stored under key, or None."""

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Remove key. Removing a missing key is a no-op."""

    @abstractmethod
    async def keys(self) -> List[str]:
        """All keys currently stored."""


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        await asyncio.sleep(0)
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.sleep(0)
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        await asyncio.sleep(0)
        self._data.pop(key, None)

    async def keys(self) -> List[str]:
        return list(self._data)


class FileKeyValueStore(KeyValueStore):
    """One `<key>.json` file per key. Writes replace the file atomically."""

    SUFFIX = ".json"

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}{self.SUFFIX}"

    async def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return await asyncio.to_thread(self._read, path)
        except OSError as e:
            raise TransientStorageException(
                f"Failed to read '{key}'", operation="get_item", details={"key": key}
            ) from e

    async def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(self._write, path, value)
        except OSError as e:
            raise TransientStorageException(
                f"Failed to store '{key}'", operation="set_item", details={"key": key}
            ) from e

    async def remove_item(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            raise TransientStorageException(
                f"Failed to remove '{key}'", operation="remove_item", details={"key": key}
            ) from e

    async def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(p.name[: -len(self.SUFFIX)] for p in self.directory.glob(f"*{self.SUFFIX}"))

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    @staticmethod
    def _write(path: Path, value: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
