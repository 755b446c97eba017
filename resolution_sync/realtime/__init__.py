"""
Realtime propagation.

The ChangeNotifier turns remote change-feed events into collection reloads
and publishes typed events on the EventBus for the presentation layer.
"""

from .events import (
    BusEvent,
    ChangeEvent,
    ChangeType,
    CollectionChanged,
    EventBus,
    RemoteWriteFailed,
    SubscriptionStatusChanged,
)
from .notifier import ChangeNotifier

__all__ = [
    "EventBus",
    "BusEvent",
    "ChangeEvent",
    "ChangeType",
    "CollectionChanged",
    "SubscriptionStatusChanged",
    "RemoteWriteFailed",
    "ChangeNotifier",
]
