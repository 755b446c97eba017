"""
Shared daily task board records.

Tasks and comments are partitioned by board date. Task status cycles
(waiting -> in progress -> done -> waiting); comments are append-only and
only ever toggled between pending and completed, or deleted.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .base import SyncedRecord
from .normalize import format_timestamp, normalize_row, parse_date, parse_enum, parse_timestamp


class TaskStatus(Enum):
    """Board status of a task. Cyclic, never terminal."""

    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    def next(self) -> TaskStatus:
        return _TASK_CYCLE[self]


_TASK_CYCLE = {
    TaskStatus.WAITING: TaskStatus.IN_PROGRESS,
    TaskStatus.IN_PROGRESS: TaskStatus.DONE,
    TaskStatus.DONE: TaskStatus.WAITING,
}

LEGACY_TASK_LABELS = {
    "대기": TaskStatus.WAITING,
    "진행": TaskStatus.IN_PROGRESS,
    "완료": TaskStatus.DONE,
}


class CommentStatus(Enum):
    """Status of a board comment."""

    PENDING = "pending"
    COMPLETED = "completed"

    def toggled(self) -> CommentStatus:
        if self is CommentStatus.PENDING:
            return CommentStatus.COMPLETED
        return CommentStatus.PENDING


TASK_ALIASES: dict[str, tuple[str, ...]] = {
    "id": (),
    "text": (),
    "status": (),
    "memo": (),
    "owner_id": ("userId", "ownerId", "authorId"),
    "date": (),
    "workflow_ref": ("workflowId", "workflowRef"),
    "created_at": ("createdAtFull", "createdAt"),
}

COMMENT_ALIASES: dict[str, tuple[str, ...]] = {
    "id": (),
    "date": (),
    "content": (),
    "author_id": ("userId", "authorId"),
    "status": (),
    "updated_at": ("updatedAt",),
}


@dataclass
class TaskItem(SyncedRecord):
    """One task on the shared board for a given date."""

    id: str
    text: str
    status: TaskStatus
    owner_id: str
    date: str
    memo: str = ""
    workflow_ref: str | None = None
    created_at: datetime | None = None

    def partition(self) -> str | None:
        return self.date

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "status": self.status.value,
            "owner_id": self.owner_id,
            "date": self.date,
            "memo": self.memo,
            "workflow_ref": self.workflow_ref,
            "created_at": format_timestamp(self.created_at),
        }

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "status": self.status.value,
            "userid": self.owner_id,
            "workflowid": self.workflow_ref or "",
            "memo": self.memo,
            "createdat": format_timestamp(self.created_at),
            "date": self.date,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TaskItem:
        row = normalize_row(data, TASK_ALIASES)
        status_value = row.get("status")
        try:
            status = parse_enum(TaskStatus, status_value, LEGACY_TASK_LABELS)
        except ValueError:
            # Unknown statuses fall back to the start of the cycle
            status = TaskStatus.WAITING
        return cls(
            id=str(row["id"]),
            text=str(row.get("text") or ""),
            status=status,
            owner_id=str(row["owner_id"]),
            date=parse_date(row["date"]),
            memo=str(row.get("memo") or ""),
            workflow_ref=row.get("workflow_ref") or None,
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class Comment(SyncedRecord):
    """Append-only board comment for a given date."""

    id: str
    date: str
    content: str
    author_id: str
    status: CommentStatus
    updated_at: datetime

    def partition(self) -> str | None:
        return self.date

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "content": self.content,
            "author_id": self.author_id,
            "status": self.status.value,
            "updated_at": self.updated_at.isoformat(),
        }

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "content": self.content,
            "userid": self.author_id,
            "status": self.status.value,
            "updatedat": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Comment:
        row = normalize_row(data, COMMENT_ALIASES)
        updated_at = parse_timestamp(row.get("updated_at"))
        if updated_at is None:
            raise ValueError("Comment requires updated_at")
        status_value = row.get("status") or CommentStatus.PENDING.value
        return cls(
            id=str(row["id"]),
            date=parse_date(row["date"]),
            content=str(row.get("content") or ""),
            author_id=str(row["author_id"]),
            status=parse_enum(CommentStatus, status_value),
            updated_at=updated_at,
        )
