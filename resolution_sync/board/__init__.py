"""
Shared daily task board.

TaskBoard and CommentStream are the second instantiation of the synced
store pattern: date-partitioned, status-cycling tasks and an append-only
comment stream.
"""

from .comments import CommentStream
from .tasks import TaskBoard, TaskStats

__all__ = ["TaskBoard", "TaskStats", "CommentStream"]
