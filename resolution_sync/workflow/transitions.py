"""
Document lifecycle.

    draft --submit--> submitted --approve--> approved
      ^                    |
      |                    +----reject---> rejected
      +-----------update-------------------+

Draft documents may also be updated in place or deleted. Approved is
terminal. Every other (status, action) pair is an invalid transition.
"""

from ..access.permissions import Action
from ..exceptions import InvalidTransitionError
from ..records.document import Document, DocumentStatus

# (from, action) -> to; None means the document is removed
TRANSITIONS: dict[tuple[DocumentStatus, Action], DocumentStatus | None] = {
    (DocumentStatus.DRAFT, Action.SUBMIT): DocumentStatus.SUBMITTED,
    (DocumentStatus.DRAFT, Action.UPDATE): DocumentStatus.DRAFT,
    (DocumentStatus.DRAFT, Action.DELETE): None,
    (DocumentStatus.SUBMITTED, Action.APPROVE): DocumentStatus.APPROVED,
    (DocumentStatus.SUBMITTED, Action.REJECT): DocumentStatus.REJECTED,
    (DocumentStatus.REJECTED, Action.UPDATE): DocumentStatus.DRAFT,
}


def allowed_actions(status: DocumentStatus) -> set[Action]:
    """Actions legal from a status."""
    return {action for (source, action) in TRANSITIONS if source == status}


def target_status(document: Document, action: Action) -> DocumentStatus | None:
    """Status a document moves to under an action.

    Returns:
        The new status, or None if the action removes the document

    Raises:
        InvalidTransitionError: If the action is not legal from the current status
    """
    key = (document.status, action)
    if key not in TRANSITIONS:
        raise InvalidTransitionError(document.id, action.value, document.status.display_name)
    return TRANSITIONS[key]
