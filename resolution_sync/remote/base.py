"""
Abstract remote store interface.

Any backend that offers filtered read, single/batch upsert, delete-by-id
and a change-feed subscription satisfies the contract. Reachability and
latency are outside our control; implementations raise
RemoteUnavailableError for transport problems and RemoteRejectedError
when the service answers but refuses a write.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any


class SubscriptionStatus(Enum):
    """Lifecycle of a change-feed channel."""

    SUBSCRIBED = "subscribed"
    CHANNEL_ERROR = "channel_error"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"


# Receives the raw change payload; parsing is the subscriber's job
ChangeCallback = Callable[[Any], Awaitable[None] | None]
StatusCallback = Callable[[SubscriptionStatus, str | None], None]


class Subscription:
    """Handle for an open change-feed subscription."""

    def __init__(self, table: str, unsubscribe: Callable[[], Awaitable[None]]) -> None:
        self.table = table
        self._unsubscribe = unsubscribe
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def unsubscribe(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        await self._unsubscribe()

    def __repr__(self) -> str:
        return f"Subscription(table={self.table}, active={self._active})"


class RemoteStore(ABC):
    """Hosted data service exposing per-table operations and a change feed."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Read rows matching all equality filters.

        Args:
            table: Table name
            filters: column -> value equality filters
            order_by: Column to sort by
            descending: Sort direction
            limit: Maximum rows to return

        Returns:
            Matching rows

        Raises:
            RemoteUnavailableError: If the store cannot be reached
        """
        ...

    @abstractmethod
    async def upsert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert or replace rows by id.

        Each row is written atomically; a batch is not a transaction.

        Returns:
            Rows as stored by the remote

        Raises:
            RemoteUnavailableError: If the store cannot be reached
            RemoteRejectedError: If the store refuses the write
        """
        ...

    @abstractmethod
    async def delete(self, table: str, row_id: str) -> bool:
        """Delete a row by id.

        Returns:
            True if a row was deleted, False if it did not exist

        Raises:
            RemoteUnavailableError: If the store cannot be reached
            RemoteRejectedError: If the store refuses the delete
        """
        ...

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        on_status: StatusCallback | None = None,
    ) -> Subscription:
        """Subscribe to insert/update/delete events on a table.

        Delivery is at-least-once. Payloads follow the
        ``{"eventType", "table", "new", "old"}`` shape.

        Raises:
            SubscriptionError: If no change feed is available
        """
        ...

    async def close(self) -> None:
        """Release connections."""
        return None
