"""
Azure Cosmos DB remote store.

Provides the remote store contract on top of Cosmos DB with:
- Connection management
- One container per table, partitioned on /id
- Parameterized equality queries
- Retry logic for transient failures (429 / 5xx)

Cosmos DB has no push change feed usable by a client, so subscriptions
are delegated to a ChangeFeedClient pointed at a change relay. Without
one, subscribe() raises SubscriptionError and callers fall back to
periodic refresh.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from azure.core.exceptions import AzureError
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError

from ..exceptions import (
    ConfigurationError,
    RemoteRejectedError,
    RemoteUnavailableError,
    SubscriptionError,
)
from .base import ChangeCallback, RemoteStore, StatusCallback, Subscription
from .change_feed import ChangeFeedClient

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0  # seconds

# Status codes worth retrying: throttling, timeout, server errors
_RETRYABLE_CLIENT_CODES = {408, 429}

_SYSTEM_FIELDS = ("_rid", "_self", "_etag", "_attachments", "_ts")


@dataclass
class CosmosConfig:
    """Configuration for Cosmos DB connection.

    Attributes:
        endpoint: Cosmos DB account endpoint URL
        key: Cosmos DB account key
        database_name: Name of the database to use
        max_retries: Maximum retry attempts for transient failures
        retry_delay: Base delay between retries (seconds)
    """

    endpoint: str
    key: str
    database_name: str = "resolution_sync"
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY

    @classmethod
    def from_env(cls, database_name: str = "resolution_sync") -> CosmosConfig:
        """Create config from environment variables.

        Expected environment variables:
        - RESOLUTION_SYNC_COSMOS_ENDPOINT: Cosmos DB account endpoint
        - RESOLUTION_SYNC_COSMOS_KEY: Cosmos DB account key
        - RESOLUTION_SYNC_COSMOS_DATABASE: Database name (optional)

        Raises:
            ConfigurationError: If required environment variables are missing
        """
        endpoint = os.environ.get("RESOLUTION_SYNC_COSMOS_ENDPOINT")
        key = os.environ.get("RESOLUTION_SYNC_COSMOS_KEY")

        if not endpoint:
            raise ConfigurationError("cosmos_endpoint", "RESOLUTION_SYNC_COSMOS_ENDPOINT not set")
        if not key:
            raise ConfigurationError("cosmos_key", "RESOLUTION_SYNC_COSMOS_KEY not set")

        return cls(
            endpoint=endpoint,
            key=key,
            database_name=os.environ.get("RESOLUTION_SYNC_COSMOS_DATABASE", database_name),
        )


def build_select_query(
    filters: dict[str, Any] | None,
    order_by: str | None,
    descending: bool,
    limit: int | None,
) -> tuple[str, list[dict[str, Any]]]:
    """Build a parameterized Cosmos SQL query for equality filters.

    Column names are bracket-quoted so reserved words like ``date`` work.
    """
    top = f"TOP {int(limit)} " if limit is not None else ""
    query = f"SELECT {top}* FROM c"
    parameters: list[dict[str, Any]] = []

    clauses = []
    for index, (column, value) in enumerate((filters or {}).items()):
        name = f"@p{index}"
        clauses.append(f'c["{column}"] = {name}')
        parameters.append({"name": name, "value": value})
    if clauses:
        query += " WHERE " + " AND ".join(clauses)

    if order_by:
        query += f' ORDER BY c["{order_by}"] {"DESC" if descending else "ASC"}'

    return query, parameters


def _strip_system_fields(item: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in item.items() if k not in _SYSTEM_FIELDS}


class CosmosRemoteStore(RemoteStore):
    """Remote store backed by Azure Cosmos DB."""

    def __init__(
        self,
        config: CosmosConfig,
        change_feed: ChangeFeedClient | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            config: Cosmos DB configuration
            change_feed: Optional change relay client for subscriptions
        """
        self.config = config
        self.change_feed = change_feed
        self._client: CosmosClient | None = None
        self._database: DatabaseProxy | None = None
        self._containers: dict[str, ContainerProxy] = {}

    @classmethod
    async def create(
        cls,
        config: CosmosConfig | None = None,
        change_feed: ChangeFeedClient | None = None,
    ) -> CosmosRemoteStore:
        """Create and connect a store."""
        store = cls(config or CosmosConfig.from_env(), change_feed)
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Open the client and ensure the database exists."""
        if self._database is not None:
            return
        try:
            self._client = CosmosClient(self.config.endpoint, credential=self.config.key)
            self._database = await self._client.create_database_if_not_exists(
                id=self.config.database_name
            )
        except CosmosHttpResponseError as e:
            if e.status_code == 401:
                raise ConfigurationError("cosmos_key", str(e)) from e
            raise RemoteUnavailableError("initialize", cause=e) from e
        except AzureError as e:
            raise RemoteUnavailableError("initialize", cause=e) from e

    async def _container(self, table: str) -> ContainerProxy:
        if table in self._containers:
            return self._containers[table]
        await self.initialize()
        if self._database is None:
            raise RemoteUnavailableError("get_container", table)
        container = await self._with_retry(
            "get_container",
            table,
            lambda: self._database.create_container_if_not_exists(
                id=table,
                partition_key=PartitionKey(path="/id"),
            ),
        )
        self._containers[table] = container
        return container

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        container = await self._container(table)
        query, parameters = build_select_query(filters, order_by, descending, limit)

        async def _run() -> list[dict[str, Any]]:
            results: list[dict[str, Any]] = []
            async for item in container.query_items(query=query, parameters=parameters):
                results.append(_strip_system_fields(item))
            return results

        return await self._with_retry("select", table, _run)

    async def upsert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        container = await self._container(table)
        stored: list[dict[str, Any]] = []
        for row in rows:
            if not row.get("id"):
                raise RemoteRejectedError("upsert", table, "row is missing an id")
            item = await self._with_retry(
                "upsert", table, lambda row=row: container.upsert_item(body=row)
            )
            stored.append(_strip_system_fields(item))
        return stored

    async def delete(self, table: str, row_id: str) -> bool:
        container = await self._container(table)
        try:
            await self._with_retry(
                "delete",
                table,
                lambda: container.delete_item(item=row_id, partition_key=row_id),
            )
            return True
        except CosmosResourceNotFoundError:
            return False

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        on_status: StatusCallback | None = None,
    ) -> Subscription:
        if self.change_feed is None:
            raise SubscriptionError(table, "Cosmos DB has no push feed and no change relay is set")
        return await self.change_feed.subscribe(table, callback, on_status)

    async def close(self) -> None:
        """Close the Cosmos DB connection."""
        if self.change_feed is not None:
            await self.change_feed.stop()
        if self._client:
            await self._client.close()
            self._client = None
            self._database = None
            self._containers = {}

    async def _with_retry(
        self,
        operation: str,
        table: str,
        call: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Execute an operation with retry logic for transient failures.

        Raises:
            CosmosResourceNotFoundError: Passed through for callers to map
            RemoteRejectedError: Non-retryable 4xx responses
            RemoteUnavailableError: Transport errors or retries exhausted
        """
        last_error: Exception | None = None

        for attempt in range(self.config.max_retries):
            try:
                return await call()
            except CosmosResourceNotFoundError:
                raise
            except CosmosHttpResponseError as e:
                status = e.status_code or 0
                if 400 <= status < 500 and status not in _RETRYABLE_CLIENT_CODES:
                    raise RemoteRejectedError(operation, table, e.message or str(e), str(status)) from e
                last_error = e
            except AzureError as e:
                last_error = e

            if attempt < self.config.max_retries - 1:
                delay = self.config.retry_delay * (2**attempt)
                logger.debug(f"Retrying {operation} on {table} in {delay}s: {last_error}")
                await asyncio.sleep(delay)

        raise RemoteUnavailableError(operation, table, last_error) from last_error
