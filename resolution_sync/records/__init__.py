"""
Record types kept in synced collections.

All records decode through a single normalization adapter, so remote
field-name variants never leak into business code.
"""

from .base import SyncedRecord
from .document import Approval, Document, DocumentStatus, FormType
from .normalize import canonical_key, normalize_row, parse_date, parse_enum, parse_timestamp
from .task import Comment, CommentStatus, TaskItem, TaskStatus

__all__ = [
    "SyncedRecord",
    "Approval",
    "Document",
    "DocumentStatus",
    "FormType",
    "TaskItem",
    "TaskStatus",
    "Comment",
    "CommentStatus",
    "canonical_key",
    "normalize_row",
    "parse_date",
    "parse_enum",
    "parse_timestamp",
]
