"""
In-process remote store.

Behaves like the hosted service from a client's point of view: per-row
atomic upserts, equality filters, and a push change feed whose events are
delivered on the event loop after the write returns. Several clients
(each with its own SyncedRecordStore and cache) can share one instance to
exercise cross-client propagation.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from datetime import UTC, datetime
from typing import Any

from ..exceptions import RemoteRejectedError, RemoteUnavailableError, SubscriptionError
from ..records.normalize import canonical_key
from .base import ChangeCallback, RemoteStore, StatusCallback, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)


def _column(row: dict[str, Any], column: str) -> Any:
    folded = canonical_key(column)
    for key, value in row.items():
        if canonical_key(key) == folded:
            return value
    return None


class InMemoryRemoteStore(RemoteStore):
    """Remote store held in process memory."""

    def __init__(self, tables: list[str] | None = None) -> None:
        """Initialize the store.

        Args:
            tables: Table names that accept writes. None accepts any table.
        """
        self._allowed_tables = set(tables) if tables is not None else None
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscribers: dict[str, list[ChangeCallback]] = {}
        self._deliveries: set[asyncio.Task[None]] = set()
        self._is_online = True
        self.realtime_enabled = True

    def set_online(self, is_online: bool) -> None:
        """Simulate connectivity changes."""
        self._is_online = is_online

    def _check_online(self, operation: str, table: str) -> None:
        if not self._is_online:
            raise RemoteUnavailableError(operation, table, ConnectionError("offline"))

    def _check_table(self, operation: str, table: str) -> None:
        if self._allowed_tables is not None and table not in self._allowed_tables:
            raise RemoteRejectedError(operation, table, f"relation '{table}' does not exist", "42P01")

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Snapshot of a table (for inspection)."""
        return [copy.deepcopy(row) for row in self._tables.get(table, {}).values()]

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self._check_online("select", table)
        self._check_table("select", table)

        rows = list(self._tables.get(table, {}).values())
        for column, value in (filters or {}).items():
            rows = [row for row in rows if _column(row, column) == value]

        if order_by:
            rows.sort(
                key=lambda row: (_column(row, order_by) is not None, str(_column(row, order_by))),
                reverse=descending,
            )
        if limit is not None:
            rows = rows[:limit]
        return [copy.deepcopy(row) for row in rows]

    async def upsert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self._check_online("upsert", table)
        self._check_table("upsert", table)

        stored: list[dict[str, Any]] = []
        bucket = self._tables.setdefault(table, {})
        for row in rows:
            row_id = row.get("id")
            if not row_id:
                raise RemoteRejectedError("upsert", table, "row is missing an id", "23502")
            old = bucket.get(str(row_id))
            new = copy.deepcopy(row)
            bucket[str(row_id)] = new
            stored.append(copy.deepcopy(new))
            self._emit(table, "UPDATE" if old is not None else "INSERT", new, old)
        return stored

    async def delete(self, table: str, row_id: str) -> bool:
        self._check_online("delete", table)
        self._check_table("delete", table)

        old = self._tables.get(table, {}).pop(row_id, None)
        if old is None:
            return False
        self._emit(table, "DELETE", None, old)
        return True

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        on_status: StatusCallback | None = None,
    ) -> Subscription:
        if not self.realtime_enabled:
            if on_status:
                on_status(SubscriptionStatus.CHANNEL_ERROR, "realtime disabled")
            raise SubscriptionError(table, "realtime disabled")

        self._subscribers.setdefault(table, []).append(callback)
        if on_status:
            on_status(SubscriptionStatus.SUBSCRIBED, None)

        async def _unsubscribe() -> None:
            callbacks = self._subscribers.get(table, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if on_status:
                on_status(SubscriptionStatus.CLOSED, None)

        return Subscription(table, _unsubscribe)

    def publish_raw(self, table: str, payload: Any) -> None:
        """Push an arbitrary payload to a table's subscribers."""
        for callback in list(self._subscribers.get(table, [])):
            self._schedule(callback, payload)

    def _emit(
        self,
        table: str,
        event_type: str,
        new: dict[str, Any] | None,
        old: dict[str, Any] | None,
    ) -> None:
        payload = {
            "eventType": event_type,
            "schema": "public",
            "table": table,
            "new": copy.deepcopy(new) if new else {},
            "old": copy.deepcopy(old) if old else {},
            "commit_timestamp": datetime.now(UTC).isoformat(),
        }
        self.publish_raw(table, payload)

    def _schedule(self, callback: ChangeCallback, payload: Any) -> None:
        task = asyncio.get_running_loop().create_task(self._deliver(callback, payload))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, callback: ChangeCallback, payload: Any) -> None:
        try:
            result = callback(payload)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Change subscriber failed")

    async def drain(self) -> None:
        """Wait until every scheduled change delivery has run."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        self._subscribers.clear()
