"""
Change notifier.

Subscribes to the remote change feed for every watched collection and turns
each insert/update/delete into one reload of the affected partition plus one
CollectionChanged event. Bursts are not de-duplicated: N events mean N full
reloads.

If a subscription cannot be opened the notifier keeps working without it:
the failure is published as SubscriptionStatusChanged and, when a refresh
interval is configured, every active partition is reloaded periodically.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import SubscriptionError
from ..records.normalize import canonical_key, parse_date
from ..remote.base import RemoteStore, Subscription, SubscriptionStatus
from .events import ChangeEvent, ChangeType, CollectionChanged, EventBus, SubscriptionStatusChanged

if TYPE_CHECKING:
    from ..synced.store import SyncedRecordStore

logger = logging.getLogger(__name__)


class ChangeNotifier:
    """Keeps watched collections in step with remote changes."""

    def __init__(
        self,
        remote: RemoteStore | None,
        bus: EventBus,
        refresh_interval: float | None = None,
    ):
        """Initialize the notifier.

        Args:
            remote: Remote store providing the change feed
            bus: Event bus for CollectionChanged / SubscriptionStatusChanged
            refresh_interval: Seconds between full reloads when a
                subscription is unavailable (None disables the fallback)
        """
        self.remote = remote
        self.bus = bus
        self.refresh_interval = refresh_interval

        self._stores: dict[str, SyncedRecordStore[Any]] = {}
        self._subscriptions: dict[str, Subscription] = {}
        self._status: dict[str, SubscriptionStatus] = {}
        self._degraded: set[str] = set()
        self._refresh_task: asyncio.Task[None] | None = None
        self._pending_publishes: set[asyncio.Task[None]] = set()
        self._running = False

    def watch(self, store: SyncedRecordStore[Any]) -> None:
        """Register a collection. Takes effect on the next start()."""
        self._stores[store.spec.table] = store

    @property
    def running(self) -> bool:
        return self._running

    @property
    def degraded_tables(self) -> set[str]:
        """Watched tables without a working subscription."""
        return set(self._degraded)

    def status(self, table: str) -> SubscriptionStatus | None:
        return self._status.get(table)

    async def start(self) -> None:
        """Open one subscription per watched table."""
        if self._running:
            return
        self._running = True

        for table in self._stores:
            await self._subscribe(table)

        if self._degraded:
            self._ensure_refresh_loop()

    async def stop(self) -> None:
        """Close subscriptions and stop the refresh loop."""
        self._running = False

        if self._refresh_task:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

        for subscription in list(self._subscriptions.values()):
            await subscription.unsubscribe()
        self._subscriptions.clear()

        if self._pending_publishes:
            await asyncio.gather(*list(self._pending_publishes), return_exceptions=True)

    async def refresh_all(self) -> int:
        """Reload every active partition of every watched collection.

        Returns:
            Number of reloads performed
        """
        reloads = 0
        for store in self._stores.values():
            partitions = store.active_partitions or {None}
            for partition in sorted(partitions, key=lambda p: p or ""):
                if partition is None and store.spec.partitioned:
                    continue
                records = await store.reload(partition)
                reloads += 1
                await self.bus.publish(
                    CollectionChanged(
                        collection=store.name,
                        partition=partition,
                        change_type=ChangeType.REFRESH,
                        count=len(records),
                    )
                )
        return reloads

    async def handle_change(self, table: str, payload: Any) -> int:
        """Process one change-feed payload for a table.

        Returns:
            Number of reloads triggered (0 for ignored payloads)
        """
        event = ChangeEvent.from_payload(payload)
        if event is None:
            logger.warning(f"Ignoring malformed change payload on {table}: {payload!r}")
            return 0
        if event.table is not None and event.table != table:
            logger.debug(f"Ignoring change for {event.table} delivered on {table}")
            return 0

        store = self._stores.get(table)
        if store is None:
            logger.debug(f"Ignoring change for unwatched table {table}")
            return 0

        reloads = 0
        for partition in self._partitions_for(store, event):
            records = await store.reload(partition)
            reloads += 1
            await self.bus.publish(
                CollectionChanged(
                    collection=store.name,
                    partition=partition,
                    change_type=event.change_type,
                    record_id=event.record_id,
                    count=len(records),
                )
            )
        return reloads

    async def _subscribe(self, table: str) -> None:
        if self.remote is None:
            await self._mark_degraded(table, "no remote store configured")
            return

        async def _callback(payload: Any) -> None:
            await self.handle_change(table, payload)

        try:
            subscription = await self.remote.subscribe(table, _callback, self._status_callback(table))
        except SubscriptionError as e:
            logger.warning(f"Realtime unavailable for {table}: {e.reason}")
            await self._mark_degraded(table, e.reason)
            return
        except Exception as e:
            logger.warning(f"Realtime subscription for {table} failed: {e}")
            await self._mark_degraded(table, str(e))
            return

        self._subscriptions[table] = subscription
        self._degraded.discard(table)

    def _ensure_refresh_loop(self) -> None:
        if not self.refresh_interval or not self._running or self._refresh_task is not None:
            return
        logger.info(
            f"Falling back to periodic refresh every {self.refresh_interval}s "
            f"for: {', '.join(sorted(self._degraded))}"
        )
        self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def _mark_degraded(self, table: str, reason: str) -> None:
        self._degraded.add(table)
        if self._status.get(table) == SubscriptionStatus.CHANNEL_ERROR:
            # Already reported through the status callback
            return
        self._status[table] = SubscriptionStatus.CHANNEL_ERROR
        await self.bus.publish(
            SubscriptionStatusChanged(table=table, status=SubscriptionStatus.CHANNEL_ERROR, error=reason)
        )

    def _status_callback(self, table: str):
        def _on_status(status: SubscriptionStatus, error: str | None) -> None:
            if self._status.get(table) == status:
                return
            self._status[table] = status
            if status == SubscriptionStatus.SUBSCRIBED:
                self._degraded.discard(table)
            elif status in (SubscriptionStatus.CHANNEL_ERROR, SubscriptionStatus.TIMED_OUT):
                self._degraded.add(table)
                self._ensure_refresh_loop()
            task = asyncio.get_running_loop().create_task(
                self.bus.publish(SubscriptionStatusChanged(table=table, status=status, error=error))
            )
            self._pending_publishes.add(task)
            task.add_done_callback(self._pending_publishes.discard)

        return _on_status

    def _partitions_for(self, store: SyncedRecordStore[Any], event: ChangeEvent) -> list[str | None]:
        if not store.spec.partitioned:
            return [None]

        active = sorted(p for p in store.active_partitions if p is not None)
        raw = _column(event.new, store.spec.partition_field) or _column(event.old, store.spec.partition_field)
        if raw is None:
            # No partition in the payload (e.g. a delete carrying only the id)
            return list(active)

        try:
            partition = parse_date(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring change with unreadable partition {raw!r} on {store.spec.table}")
            return []
        return [partition] if partition in active else []

    async def _refresh_loop(self) -> None:
        assert self.refresh_interval is not None
        while self._running:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh_all()
            except Exception:
                logger.exception("Periodic refresh failed")


def _column(row: dict[str, Any], column: str | None) -> Any:
    if not column:
        return None
    folded = canonical_key(column)
    for key, value in row.items():
        if canonical_key(key) == folded:
            return value
    return None
