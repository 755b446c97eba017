"""
Pending write queue.

Remote writes that could not be delivered are kept in a JSONL file so they
survive restarts and can be replayed once the remote is reachable again.
Only the newest write per (table, record) is kept; the remote is
last-write-wins, so older ones would be overwritten on replay anyway.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..exceptions import StorageIOError

logger = logging.getLogger(__name__)


class WriteOperation(Enum):
    """Remote operation to replay."""

    UPSERT = "upsert"
    DELETE = "delete"


@dataclass
class PendingWrite:
    """A remote write waiting for delivery.

    Attributes:
        write_id: Unique identifier for this queued write
        collection: Collection name the write belongs to
        table: Remote table
        operation: Upsert or delete
        record_id: Target record
        row: Remote row for upserts
        timestamp: When the write was queued
        retries: Number of failed replay attempts
        last_error: Last replay error
    """

    write_id: str
    collection: str
    table: str
    operation: WriteOperation
    record_id: str
    row: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    retries: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "write_id": self.write_id,
            "collection": self.collection,
            "table": self.table,
            "operation": self.operation.value,
            "record_id": self.record_id,
            "row": self.row,
            "timestamp": self.timestamp.isoformat(),
            "retries": self.retries,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingWrite:
        timestamp = data.get("timestamp")
        return cls(
            write_id=data["write_id"],
            collection=data["collection"],
            table=data["table"],
            operation=WriteOperation(data["operation"]),
            record_id=data["record_id"],
            row=data.get("row"),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(UTC),
            retries=data.get("retries", 0),
            last_error=data.get("last_error"),
        )


class PendingWriteQueue:
    """Durable queue of undelivered remote writes."""

    def __init__(self, queue_path: Path):
        """Initialize the queue.

        Args:
            queue_path: Path to the JSONL queue file
        """
        self.queue_path = queue_path
        self._writes: list[PendingWrite] = []
        self._loaded = False

    async def _ensure_loaded(self) -> None:
        """Load queued writes from disk if not already loaded."""
        if self._loaded:
            return

        if await aiofiles.os.path.exists(self.queue_path):
            try:
                async with aiofiles.open(self.queue_path, encoding="utf-8") as f:
                    content = await f.read()
                for line in content.strip().split("\n"):
                    if line:
                        self._writes.append(PendingWrite.from_dict(json.loads(line)))
            except (json.JSONDecodeError, KeyError, ValueError, OSError) as e:
                logger.warning(f"Discarding unreadable outbox {self.queue_path}: {e}")
                self._writes = []

        self._loaded = True

    async def _persist(self) -> None:
        """Persist queued writes to disk."""
        try:
            await aiofiles.os.makedirs(self.queue_path.parent, exist_ok=True)
            async with aiofiles.open(self.queue_path, "w", encoding="utf-8") as f:
                for write in self._writes:
                    await f.write(json.dumps(write.to_dict(), ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            raise StorageIOError("persist_outbox", str(self.queue_path), e) from e

    async def enqueue(
        self,
        collection: str,
        table: str,
        operation: WriteOperation,
        record_id: str,
        row: dict[str, Any] | None = None,
    ) -> PendingWrite:
        """Queue a write, replacing any older write for the same record."""
        await self._ensure_loaded()

        write = PendingWrite(
            write_id=str(uuid.uuid4()),
            collection=collection,
            table=table,
            operation=operation,
            record_id=record_id,
            row=row,
        )
        self._writes = [
            w for w in self._writes if not (w.table == table and w.record_id == record_id)
        ]
        self._writes.append(write)
        await self._persist()
        return write

    async def pending(self, table: str | None = None, max_retries: int = 5) -> list[PendingWrite]:
        """Get queued writes, oldest first.

        Args:
            table: Filter by remote table (optional)
            max_retries: Exclude writes that failed more often than this
        """
        await self._ensure_loaded()

        writes = self._writes
        if table:
            writes = [w for w in writes if w.table == table]
        return [w for w in writes if w.retries < max_retries]

    async def count(self, table: str | None = None) -> int:
        return len(await self.pending(table))

    async def mark_synced(self, write_id: str) -> bool:
        """Remove a delivered write. Returns True if it was queued."""
        await self._ensure_loaded()

        original_count = len(self._writes)
        self._writes = [w for w in self._writes if w.write_id != write_id]

        if len(self._writes) < original_count:
            await self._persist()
            return True
        return False

    async def discard_record(self, table: str, record_id: str) -> int:
        """Drop queued writes for a record that reached the remote directly.

        Returns:
            Number of writes removed
        """
        await self._ensure_loaded()

        original_count = len(self._writes)
        self._writes = [
            w for w in self._writes if not (w.table == table and w.record_id == record_id)
        ]

        removed = original_count - len(self._writes)
        if removed:
            await self._persist()
        return removed

    async def mark_failed(self, write_id: str, error: str) -> bool:
        """Record a failed replay attempt."""
        await self._ensure_loaded()

        for write in self._writes:
            if write.write_id == write_id:
                write.retries += 1
                write.last_error = error
                await self._persist()
                return True
        return False

    async def clear(self) -> int:
        """Drop every queued write. Returns how many were removed."""
        await self._ensure_loaded()

        count = len(self._writes)
        self._writes = []
        await self._persist()
        return count
