"""
Remote store backends.

Exports the abstract contract plus:
- InMemoryRemoteStore: in-process backend with a change feed
- CosmosRemoteStore: Azure Cosmos DB backend
- ChangeFeedClient: SSE/WebSocket client for a hosted change relay
"""

from .base import (
    ChangeCallback,
    RemoteStore,
    StatusCallback,
    Subscription,
    SubscriptionStatus,
)
from .change_feed import ChangeFeedClient, parse_sse_event
from .cosmos import CosmosConfig, CosmosRemoteStore, build_select_query
from .memory import InMemoryRemoteStore

__all__ = [
    "RemoteStore",
    "Subscription",
    "SubscriptionStatus",
    "ChangeCallback",
    "StatusCallback",
    "InMemoryRemoteStore",
    "CosmosConfig",
    "CosmosRemoteStore",
    "build_select_query",
    "ChangeFeedClient",
    "parse_sse_event",
]
