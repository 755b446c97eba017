"""ID generation utilities for synced records.

Centralizes the ID format knowledge so callers never need to
construct record IDs directly.

Document IDs: doc_{hex}
Task IDs: task_{hex}
Comment IDs: cmt_{hex}
"""

from __future__ import annotations

import uuid

DOCUMENT_PREFIX = "doc"
TASK_PREFIX = "task"
COMMENT_PREFIX = "cmt"


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def document_id() -> str:
    """Generate a document ID."""
    return _new_id(DOCUMENT_PREFIX)


def task_id() -> str:
    """Generate a task ID."""
    return _new_id(TASK_PREFIX)


def comment_id() -> str:
    """Generate a comment ID."""
    return _new_id(COMMENT_PREFIX)


def id_prefix(record_id: str) -> str:
    """Extract the type prefix from a record ID.

    Raises ValueError on malformed input.
    """
    prefix, sep, rest = record_id.partition("_")
    if not sep or not prefix or not rest:
        raise ValueError(f"Malformed record ID: {record_id}")
    return prefix
