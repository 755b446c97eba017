"""
Synced record store.

Dual-write / fallback-read layer over one collection:

- Reads race the remote query against the collection's timeout. A remote
  result overwrites the cache; a timeout or error falls back to the last
  cached snapshot.
- Writes land in the in-memory snapshot and the local cache first, then go
  to the remote bounded by the write timeout. Remote trouble never rolls the
  local mutation back.

A remote call that loses its timeout race keeps running in the background
unless ``cancel_on_timeout`` is set. When it finishes it still commits its
result to the cache under the store lock, so a late response can replace
what the caller already saw. Nothing orders overlapping writers either:
the last write to reach the remote wins.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from ..exceptions import (
    RecordNotFoundError,
    RemoteRejectedError,
    RemoteTimeoutError,
    RemoteUnavailableError,
    ResolutionSyncError,
    StorageIOError,
)
from ..local.cache import LocalCache
from ..logging_utils import SyncLoggerAdapter
from ..realtime.events import EventBus, RemoteWriteFailed
from ..records.base import SyncedRecord
from ..remote.base import RemoteStore
from .collections import CollectionSpec
from .outbox import PendingWrite, PendingWriteQueue, WriteOperation

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=SyncedRecord)

Patch = Mapping[str, Any] | Callable[[Any], Any]


@dataclass
class WriteResult(Generic[T]):
    """Outcome of a mutation.

    ``success`` reflects the local mutation, except that an explicit remote
    rejection also reports failure. ``synced`` tells whether the remote
    accepted the write; when it is False, ``error`` carries the reason.
    """

    success: bool
    record: T | None = None
    error: ResolutionSyncError | None = None
    synced: bool = False

    @classmethod
    def failed(cls, error: ResolutionSyncError) -> WriteResult[Any]:
        return cls(success=False, error=error)


@dataclass
class _WriteTicket:
    pending: PendingWrite | None = None
    abandoned: bool = False


@dataclass
class _Snapshot(Generic[T]):
    records: dict[str, T] = field(default_factory=dict)


class SyncedRecordStore(Generic[T]):
    """Local-first store for one collection.

    Example:
        >>> store = SyncedRecordStore(TASKS, FileCache(), remote, bus=bus)
        >>> tasks = await store.load("2026-10-19")
        >>> result = await store.save(task)
        >>> result.success, result.synced
        (True, True)
    """

    def __init__(
        self,
        spec: CollectionSpec[T],
        cache: LocalCache,
        remote: RemoteStore | None = None,
        bus: EventBus | None = None,
        write_timeout: float = 5.0,
        cancel_on_timeout: bool = False,
        outbox: PendingWriteQueue | None = None,
    ):
        """Initialize the store.

        Args:
            spec: Collection definition
            cache: Local durable cache
            remote: Remote store; None runs the collection local-only
            bus: Event bus for RemoteWriteFailed events
            write_timeout: Seconds a write waits for the remote
            cancel_on_timeout: Cancel remote calls that lose the timeout race
            outbox: Queue for writes that did not reach the remote
        """
        self.spec = spec
        self.cache = cache
        self.remote = remote
        self.bus = bus
        self.write_timeout = write_timeout
        self.cancel_on_timeout = cancel_on_timeout
        self.outbox = outbox

        self._snapshots: dict[str | None, _Snapshot[T]] = {}
        self._active: set[str | None] = set()
        self._lock = asyncio.Lock()
        self._background: set[asyncio.Future[Any]] = set()
        # record id -> (partition, record or None for deletes, ticket) while a push is running
        self._in_flight: dict[str, tuple[str | None, T | None, _WriteTicket]] = {}
        # record id -> ticket of the newest write issued for it
        self._latest: dict[str, _WriteTicket] = {}
        self._log = SyncLoggerAdapter(logger, {"collection": spec.name})

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def active_partitions(self) -> set[str | None]:
        """Partitions loaded so far (``{None}`` for unpartitioned collections)."""
        return set(self._active)

    # -- reads -------------------------------------------------------------

    async def load(self, partition: str | None = None) -> list[T]:
        """Load a collection (or one partition of it).

        Never raises for remote problems: on timeout or error the last
        cached snapshot is returned, possibly empty.
        """
        key = self.spec.cache_key_for(partition)
        self._active.add(partition)

        if self.remote is None:
            return await self._cached(partition)

        try:
            records = await self._race(
                self._fetch_and_commit(partition),
                self.spec.load_timeout,
                "select",
            )
        except RemoteTimeoutError:
            self._log.warning(
                f"Remote load of {key} timed out after {self.spec.load_timeout}s; using cache",
                extra={"partition": partition},
            )
            return await self._cached(partition)
        except ResolutionSyncError as e:
            self._log.warning(
                f"Remote load of {key} failed; using cache: {e}", extra={"partition": partition}
            )
            return await self._cached(partition)
        return list(records)

    async def reload(self, partition: str | None = None) -> list[T]:
        """Refetch a partition. Used by the change notifier."""
        return await self.load(partition)

    def records(self, partition: str | None = None) -> list[T]:
        """In-memory snapshot of a partition (empty if never loaded)."""
        snapshot = self._snapshots.get(partition)
        return list(snapshot.records.values()) if snapshot else []

    async def get(self, record_id: str, partition: str | None = None) -> T | None:
        """Find a record in the snapshot, reading the cache if needed."""
        found = await self._locate(record_id, partition)
        return found[1] if found else None

    # -- writes ------------------------------------------------------------

    async def save(self, record: T) -> WriteResult[T]:
        """Insert or replace a record."""
        partition = self._partition_of(record)
        await self._apply_local(partition, record)
        return await self._sync_write(WriteOperation.UPSERT, record, partition)

    async def update(
        self,
        record_id: str,
        patch: Patch,
        partition: str | None = None,
    ) -> WriteResult[T]:
        """Modify a record.

        Args:
            record_id: Target record
            patch: Either a mapping of field name -> new value, or a function
                that receives the current record and returns the new one. A
                ResolutionSyncError raised by the function aborts the update
                without changing anything.
            partition: Partition to search (all loaded partitions if None)
        """
        found = await self._locate(record_id, partition)
        if found is None:
            return WriteResult.failed(RecordNotFoundError(record_id, self.spec.name))
        partition, current = found

        try:
            if callable(patch):
                updated = patch(current)
            else:
                if "id" in patch and patch["id"] != current.id:
                    raise ValueError("Record id is immutable")
                updated = dataclasses.replace(current, **dict(patch))
        except ResolutionSyncError as e:
            return WriteResult.failed(e)

        if updated.id != current.id or self._partition_of(updated) != partition:
            raise ValueError("An update cannot change a record's id or partition")

        await self._apply_local(partition, updated)
        return await self._sync_write(WriteOperation.UPSERT, updated, partition)

    async def delete(
        self,
        record_id: str,
        partition: str | None = None,
        guard: Callable[[Any], None] | None = None,
    ) -> WriteResult[T]:
        """Remove a record.

        Args:
            record_id: Target record
            partition: Partition to search (all loaded partitions if None)
            guard: Called with the current record before removal; a
                ResolutionSyncError it raises aborts the delete
        """
        found = await self._locate(record_id, partition)
        if found is None:
            return WriteResult.failed(RecordNotFoundError(record_id, self.spec.name))
        partition, current = found

        if guard is not None:
            try:
                guard(current)
            except ResolutionSyncError as e:
                return WriteResult.failed(e)

        snapshot = self._snapshots[partition]
        snapshot.records.pop(record_id, None)
        await self._persist(partition)
        return await self._sync_write(WriteOperation.DELETE, current, partition)

    async def flush_pending(self) -> int:
        """Replay queued writes for this collection.

        Returns:
            Number of writes delivered
        """
        if self.outbox is None or self.remote is None:
            return 0

        delivered = 0
        for write in await self.outbox.pending(self.spec.table):
            try:
                await self._race(self._replay(write), self.write_timeout, write.operation.value)
            except ResolutionSyncError as e:
                await self.outbox.mark_failed(write.write_id, str(e))
                self._log.warning(f"Replay of {write.operation.value} {write.record_id} failed: {e}")
                continue
            await self.outbox.mark_synced(write.write_id)
            delivered += 1

        if delivered:
            self._log.info(f"Delivered {delivered} queued writes")
        return delivered

    async def drain(self) -> None:
        """Wait for abandoned remote calls to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # -- internals ---------------------------------------------------------

    def _partition_of(self, record: T) -> str | None:
        return record.partition() if self.spec.partitioned else None

    async def _cached(self, partition: str | None) -> list[T]:
        if partition not in self._snapshots:
            rows = await self.cache.get(self.spec.cache_key_for(partition))
            self._snapshots[partition] = _Snapshot(self._index(self._decode(rows)))
        return self.records(partition)

    async def _locate(self, record_id: str, partition: str | None) -> tuple[str | None, T] | None:
        if partition is not None or not self.spec.partitioned:
            await self._cached(partition)
            candidates = [partition]
        else:
            candidates = list(self._snapshots)

        for candidate in candidates:
            snapshot = self._snapshots.get(candidate)
            if snapshot and record_id in snapshot.records:
                return candidate, snapshot.records[record_id]
        return None

    async def _apply_local(self, partition: str | None, record: T) -> None:
        if partition not in self._snapshots:
            await self._cached(partition)
        self._snapshots[partition].records[record.id] = record
        await self._persist(partition)

    async def _persist(self, partition: str | None) -> None:
        key = self.spec.cache_key_for(partition)
        rows = [r.to_dict() for r in self.records(partition)]
        async with self._lock:
            try:
                await self.cache.put(key, rows)
            except StorageIOError as e:
                # The in-memory snapshot stays authoritative for this process
                self._log.warning(f"Could not persist {key}: {e}")

    async def _fetch_and_commit(self, partition: str | None) -> list[T]:
        assert self.remote is not None
        filters = {self.spec.partition_field: partition} if self.spec.partitioned else None
        rows = await self.remote.select(
            self.spec.table,
            filters=filters,
            order_by=self.spec.order_by,
            descending=self.spec.descending,
        )
        records = self._decode(rows)
        indexed = self._index(records)
        for record_id, (in_flight_partition, pending, _) in list(self._in_flight.items()):
            if in_flight_partition != partition:
                continue
            if pending is None:
                indexed.pop(record_id, None)
            else:
                indexed[record_id] = pending
        records = list(indexed.values())
        self._snapshots[partition] = _Snapshot(indexed)
        await self._persist(partition)
        return records

    async def _sync_write(
        self,
        operation: WriteOperation,
        record: T,
        partition: str | None,
    ) -> WriteResult[T]:
        if self.remote is None:
            return WriteResult(success=True, record=record, synced=False)

        ticket = _WriteTicket()
        self._latest[record.id] = ticket
        try:
            await self._race(
                self._push(operation, record, partition, ticket),
                self.write_timeout,
                operation.value,
            )
        except RemoteRejectedError as e:
            self._log.error(f"Remote rejected {operation.value} of {record.id}: {e.reason}")
            await self._publish_failure(record.id, operation, e, rejected=True)
            return WriteResult(success=False, record=record, error=e, synced=False)
        except RemoteUnavailableError as e:
            ticket.abandoned = isinstance(e, RemoteTimeoutError) and not self.cancel_on_timeout
            self._log.warning(f"{operation.value} of {record.id} kept local only: {e}")
            if self.outbox is not None:
                row = record.to_row() if operation == WriteOperation.UPSERT else None
                try:
                    ticket.pending = await self.outbox.enqueue(
                        self.spec.name, self.spec.table, operation, record.id, row
                    )
                except StorageIOError as queue_error:
                    self._log.warning(f"Could not queue {operation.value} of {record.id}: {queue_error}")
            await self._publish_failure(record.id, operation, e, rejected=False)
            return WriteResult(success=True, record=record, error=e, synced=False)

        await self._settle_queue(record.id, ticket)
        return WriteResult(success=True, record=record, synced=True)

    async def _push(
        self,
        operation: WriteOperation,
        record: T,
        partition: str | None,
        ticket: _WriteTicket,
    ) -> None:
        assert self.remote is not None
        self._in_flight[record.id] = (
            partition,
            record if operation == WriteOperation.UPSERT else None,
            ticket,
        )
        try:
            if operation == WriteOperation.DELETE:
                await self.remote.delete(self.spec.table, record.id)
            else:
                stored = await self.remote.upsert(self.spec.table, [record.to_row()])
                if ticket.abandoned:
                    await self._commit_late(partition, stored)
        finally:
            entry = self._in_flight.get(record.id)
            if entry is not None and entry[2] is ticket:
                del self._in_flight[record.id]

        if ticket.abandoned:
            self._log.info(f"Late {operation.value} of {record.id} reached the remote")
            await self._settle_queue(record.id, ticket)

    async def _settle_queue(self, record_id: str, ticket: _WriteTicket) -> None:
        """Drop queued writes superseded by a delivered one.

        Only the newest write for a record clears the whole queue entry for
        it; an older write landing late removes just its own entry.
        """
        latest = self._latest.get(record_id) is ticket
        if latest:
            del self._latest[record_id]
        if self.outbox is None:
            return
        try:
            if latest:
                await self.outbox.discard_record(self.spec.table, record_id)
            elif ticket.pending is not None:
                await self.outbox.mark_synced(ticket.pending.write_id)
        except StorageIOError as e:
            self._log.warning(f"Could not update outbox for {record_id}: {e}")

    async def _commit_late(self, partition: str | None, rows: list[dict[str, Any]]) -> None:
        snapshot = self._snapshots.setdefault(partition, _Snapshot())
        changed = False
        for record in self._decode(rows):
            if snapshot.records.get(record.id) != record:
                snapshot.records[record.id] = record
                changed = True
        if changed:
            await self._persist(partition)

    async def _replay(self, write: PendingWrite) -> None:
        assert self.remote is not None
        if write.operation == WriteOperation.DELETE:
            await self.remote.delete(write.table, write.record_id)
        else:
            await self.remote.upsert(write.table, [write.row or {}])

    async def _race(self, call: Awaitable[Any], timeout: float, operation: str) -> Any:
        """Await a remote call bounded by a timeout.

        Non-library exceptions from the remote are reported as
        RemoteUnavailableError.

        Raises:
            RemoteTimeoutError: If the call did not finish in time
            RemoteUnavailableError: If the remote could not be reached
            RemoteRejectedError: If the remote refused the call
        """
        task = asyncio.ensure_future(call)
        try:
            if self.cancel_on_timeout:
                return await asyncio.wait_for(task, timeout)
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except TimeoutError:
            if not self.cancel_on_timeout:
                self._background.add(task)
                task.add_done_callback(self._finish_abandoned)
            raise RemoteTimeoutError(operation, self.spec.table, timeout) from None
        except ResolutionSyncError:
            raise
        except Exception as e:
            raise RemoteUnavailableError(operation, self.spec.table, e) from e

    def _finish_abandoned(self, task: asyncio.Future[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._log.warning(f"Abandoned remote call failed: {error}")

    async def _publish_failure(
        self,
        record_id: str,
        operation: WriteOperation,
        error: ResolutionSyncError,
        rejected: bool,
    ) -> None:
        if self.bus is None:
            return
        await self.bus.publish(
            RemoteWriteFailed(
                collection=self.spec.name,
                record_id=record_id,
                operation=operation.value,
                error=str(error),
                rejected=rejected,
            )
        )

    def _decode(self, rows: list[dict[str, Any]]) -> list[T]:
        records: list[T] = []
        for row in rows:
            try:
                records.append(self.spec.record_type.from_dict(row))
            except (KeyError, TypeError, ValueError) as e:
                self._log.warning(f"Skipping malformed {self.spec.name} row {row.get('id')!r}: {e}")
        return records

    @staticmethod
    def _index(records: list[T]) -> dict[str, T]:
        return {record.id: record for record in records}
