"""Access control module."""

from .controller import AccessController
from .permissions import AccessDecision, Action, TaskEditPolicy

__all__ = [
    "AccessController",
    "AccessDecision",
    "Action",
    "TaskEditPolicy",
]
