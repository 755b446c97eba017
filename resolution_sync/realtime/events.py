"""
Events and the in-process event bus.

The UI subscribes to these instead of polling collections. Remote change
payloads are parsed here into ChangeEvent; anything that does not fit the
``{eventType, table, new, old}`` shape parses to None.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..remote.base import SubscriptionStatus

logger = logging.getLogger(__name__)


class ChangeType(Enum):
    """Row-level change kinds reported by the change feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    # Reload triggered by the periodic refresh, not by a change event
    REFRESH = "REFRESH"


@dataclass
class ChangeEvent:
    """A parsed change-feed payload."""

    change_type: ChangeType
    table: str | None
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)

    @property
    def row(self) -> dict[str, Any]:
        """The row the change is about: new for inserts/updates, old for deletes."""
        return self.new or self.old

    @property
    def record_id(self) -> str | None:
        value = self.row.get("id")
        return str(value) if value else None

    @classmethod
    def from_payload(cls, payload: Any) -> ChangeEvent | None:
        """Parse a raw payload, returning None if it is malformed."""
        if not isinstance(payload, dict):
            return None

        raw_type = payload.get("eventType") or payload.get("type")
        if not isinstance(raw_type, str):
            return None
        try:
            change_type = ChangeType(raw_type.upper())
        except ValueError:
            return None
        if change_type == ChangeType.REFRESH:
            return None

        new = payload.get("new") or payload.get("record") or {}
        old = payload.get("old") or payload.get("old_record") or {}
        if not isinstance(new, dict) or not isinstance(old, dict):
            return None

        table = payload.get("table")
        return cls(
            change_type=change_type,
            table=table if isinstance(table, str) else None,
            new=new,
            old=old,
        )


@dataclass
class BusEvent:
    """Base for events published on the bus."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC), kw_only=True)


@dataclass
class CollectionChanged(BusEvent):
    """A collection was reloaded because of a remote change."""

    collection: str
    partition: str | None
    change_type: ChangeType
    record_id: str | None = None
    count: int = 0


@dataclass
class SubscriptionStatusChanged(BusEvent):
    """A change-feed subscription changed state."""

    table: str
    status: SubscriptionStatus
    error: str | None = None


@dataclass
class RemoteWriteFailed(BusEvent):
    """A local mutation could not be written to the remote store."""

    collection: str
    record_id: str
    operation: str
    error: str
    rejected: bool = False


Handler = Callable[[Any], Awaitable[None] | None]


class EventBus:
    """Typed publish/subscribe for bus events.

    Handlers registered for a class also receive its subclasses. Handler
    exceptions are logged and do not stop delivery to other handlers.
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[type, Handler]] = []

    def subscribe(self, event_type: type, handler: Handler) -> Callable[[], None]:
        """Register a handler.

        Returns:
            A function that removes the handler again
        """
        entry = (event_type, handler)
        self._handlers.append(entry)

        def _remove() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return _remove

    async def publish(self, event: BusEvent) -> None:
        for event_type, handler in list(self._handlers):
            if not isinstance(event, event_type):
                continue
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Event handler failed for {type(event).__name__}")
