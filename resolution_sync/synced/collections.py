"""
Collection definitions.

A CollectionSpec binds a record type to its remote table and local cache
key. Date-partitioned collections append the partition value to the key
prefix, e.g. ``daily_tasks_shared_2026-10-19``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Generic, TypeVar

from ..records.base import SyncedRecord
from ..records.document import Document
from ..records.task import Comment, TaskItem

T = TypeVar("T", bound=SyncedRecord)


@dataclass(frozen=True)
class CollectionSpec(Generic[T]):
    """How one collection maps onto the remote store and the local cache.

    Attributes:
        name: Collection name used in events and logs
        table: Remote table name
        record_type: Record class used to decode rows
        cache_key: Cache key, or key prefix for partitioned collections
        partition_field: Remote column holding the partition value
        load_timeout: Seconds a load waits for the remote before using the cache
        order_by: Remote column to sort loads by
        descending: Sort direction for loads
    """

    name: str
    table: str
    record_type: type[T]
    cache_key: str
    partition_field: str | None = None
    load_timeout: float = 5.0
    order_by: str | None = None
    descending: bool = False

    @property
    def partitioned(self) -> bool:
        return self.partition_field is not None

    def cache_key_for(self, partition: str | None) -> str:
        """Cache key for a partition.

        Raises:
            ValueError: If a partitioned collection is addressed without a
                partition, or an unpartitioned one with one
        """
        if self.partitioned:
            if not partition:
                raise ValueError(f"Collection {self.name} requires a partition")
            return f"{self.cache_key}{partition}"
        if partition is not None:
            raise ValueError(f"Collection {self.name} is not partitioned")
        return self.cache_key

    def with_timeout(self, load_timeout: float) -> CollectionSpec[T]:
        return replace(self, load_timeout=load_timeout)


DOCUMENTS: CollectionSpec[Document] = CollectionSpec(
    name="documents",
    table="documents",
    record_type=Document,
    cache_key="expense_documents",
    load_timeout=5.0,
    order_by="createdAt",
    descending=True,
)

TASKS: CollectionSpec[TaskItem] = CollectionSpec(
    name="tasks",
    table="tasks",
    record_type=TaskItem,
    cache_key="daily_tasks_shared_",
    partition_field="date",
    load_timeout=1.5,
    order_by="createdat",
)

COMMENTS: CollectionSpec[Comment] = CollectionSpec(
    name="comments",
    table="task_comments",
    record_type=Comment,
    cache_key="daily_comment_shared_",
    partition_field="date",
    load_timeout=1.0,
    order_by="updatedat",
)
