"""Access control for documents and board entries."""

from ..exceptions import PermissionDeniedError
from ..identity.types import Principal
from .permissions import AccessDecision, Action, TaskEditPolicy

_DECISIONS = frozenset({Action.APPROVE, Action.REJECT})


class AccessController:
    """Centralized permission checks.

    Documents are owner-only for every mutation and admin-only for
    decisions. Board entries follow the configured TaskEditPolicy.
    """

    def __init__(self, task_policy: TaskEditPolicy = TaskEditPolicy.OWNER_OR_ADMIN):
        self.task_policy = task_policy

    def check_document(self, principal: Principal, owner_id: str | None, action: Action) -> AccessDecision:
        """Check a document action.

        Args:
            principal: Acting principal
            owner_id: Document owner (None for create)
            action: Requested action

        Returns:
            AccessDecision with allowed status and reason
        """
        if action in _DECISIONS:
            if principal.is_admin:
                return AccessDecision(allowed=True, reason="admin", action=action)
            return AccessDecision(allowed=False, reason="admin_only", action=action)

        if action == Action.CREATE:
            return AccessDecision(allowed=True, reason="signed_in", action=action)

        # No admin override for document content
        if owner_id == principal.id:
            return AccessDecision(allowed=True, reason="owner", action=action)
        return AccessDecision(allowed=False, reason="owner_only", action=action)

    def check_board_entry(self, principal: Principal, owner_id: str | None, action: Action) -> AccessDecision:
        """Check an action on a task or comment."""
        if action == Action.CREATE:
            return AccessDecision(allowed=True, reason="signed_in", action=action)

        if owner_id == principal.id:
            return AccessDecision(allowed=True, reason="owner", action=action)

        if self.task_policy == TaskEditPolicy.SHARED:
            return AccessDecision(allowed=True, reason="shared_board", action=action)

        if principal.is_admin:
            return AccessDecision(allowed=True, reason="admin", action=action)
        return AccessDecision(allowed=False, reason="owner_or_admin_only", action=action)

    @staticmethod
    def to_error(
        principal: Principal,
        decision: AccessDecision,
        record_id: str | None = None,
    ) -> PermissionDeniedError:
        """Turn a denial into the error reported to callers."""
        action = decision.action.value if decision.action else "access"
        return PermissionDeniedError(principal.id, action, decision.reason, record_id)
