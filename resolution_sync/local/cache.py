"""
Local durable cache.

Stores one JSON-array blob per key, e.g.:

{base_path}/
  expense_documents.json
  daily_tasks_shared_2026-10-19.json
  daily_comment_shared_2026-10-19.json

An in-memory mirror sits in front of the files. Writes land in the mirror
before the first await so callers see them immediately; the file write
follows. The mirror is shared process-wide per cache instance and is
last-write-wins.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..exceptions import StorageIOError

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class LocalCache(ABC):
    """Abstract key -> list-of-rows cache."""

    @abstractmethod
    async def get(self, key: str) -> list[dict[str, Any]]:
        """Return the cached rows for key (empty list if absent)."""
        ...

    @abstractmethod
    async def put(self, key: str, rows: list[dict[str, Any]]) -> None:
        """Replace the cached rows for key."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""
        ...

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """List cached keys, optionally filtered by prefix."""
        ...


class MemoryCache(LocalCache):
    """Non-durable cache for tests and ephemeral runs."""

    def __init__(self) -> None:
        self._data: dict[str, list[dict[str, Any]]] = {}

    async def get(self, key: str) -> list[dict[str, Any]]:
        return [dict(row) for row in self._data.get(key, [])]

    async def put(self, key: str, rows: list[dict[str, Any]]) -> None:
        self._data[key] = [dict(row) for row in rows]

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class FileCache(LocalCache):
    """JSON file per key, fronted by an in-memory mirror."""

    def __init__(self, base_path: Path | str | None = None) -> None:
        """Initialize the file cache.

        Args:
            base_path: Directory for cache blobs. Defaults to ~/.resolution_sync/cache
        """
        self.base_path = Path(base_path) if base_path else Path.home() / ".resolution_sync" / "cache"
        self._mirror: dict[str, list[dict[str, Any]]] = {}

    def _path_for(self, key: str) -> Path:
        return self.base_path / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    async def get(self, key: str) -> list[dict[str, Any]]:
        if key not in self._mirror:
            self._mirror[key] = await self._read(key)
        return [dict(row) for row in self._mirror[key]]

    async def put(self, key: str, rows: list[dict[str, Any]]) -> None:
        snapshot = [dict(row) for row in rows]
        self._mirror[key] = snapshot
        await self._write(key, snapshot)

    async def delete(self, key: str) -> bool:
        existed = self._mirror.pop(key, None) is not None
        path = self._path_for(key)
        if await aiofiles.os.path.exists(path):
            try:
                await aiofiles.os.remove(path)
            except OSError as e:
                raise StorageIOError("delete", str(path), e) from e
            existed = True
        return existed

    async def keys(self, prefix: str = "") -> list[str]:
        found = set(self._mirror)
        if self.base_path.exists():
            found.update(p.stem for p in self.base_path.glob("*.json"))
        return sorted(k for k in found if k.startswith(prefix))

    async def _read(self, key: str) -> list[dict[str, Any]]:
        path = self._path_for(key)
        if not await aiofiles.os.path.exists(path):
            return []

        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                content = await f.read()
            data = json.loads(content) if content.strip() else []
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Discarding unreadable cache blob {path}: {e}")
            return []

        if not isinstance(data, list):
            logger.warning(f"Discarding cache blob {path}: expected a JSON array")
            return []
        return [row for row in data if isinstance(row, dict)]

    async def _write(self, key: str, rows: list[dict[str, Any]]) -> None:
        path = self._path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            await aiofiles.os.makedirs(self.base_path, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(rows, ensure_ascii=False, default=str))
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise StorageIOError("write", str(path), e) from e
