"""
Synced collections.

SyncedRecordStore is the dual-write / fallback-read layer every other
component goes through; CollectionSpec describes one collection.
"""

from .collections import COMMENTS, DOCUMENTS, TASKS, CollectionSpec
from .outbox import PendingWrite, PendingWriteQueue, WriteOperation
from .store import SyncedRecordStore, WriteResult

__all__ = [
    "CollectionSpec",
    "DOCUMENTS",
    "TASKS",
    "COMMENTS",
    "SyncedRecordStore",
    "WriteResult",
    "PendingWrite",
    "PendingWriteQueue",
    "WriteOperation",
]
