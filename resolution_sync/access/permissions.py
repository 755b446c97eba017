"""Permission types for access control."""

from dataclasses import dataclass
from enum import Enum


class Action(Enum):
    """Mutations subject to access control."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    TOGGLE = "toggle"


class TaskEditPolicy(Enum):
    """Who may edit or delete tasks and comments on the shared board."""

    OWNER_OR_ADMIN = "owner_or_admin"
    SHARED = "shared"


@dataclass
class AccessDecision:
    """Result of an access control check."""

    allowed: bool
    reason: str
    action: Action | None = None
