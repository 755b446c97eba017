"""Tests for access control."""

from __future__ import annotations

import pytest

from resolution_sync.access import AccessController, Action, TaskEditPolicy
from resolution_sync.exceptions import PermissionDeniedError
from resolution_sync.identity import Principal


class TestDocumentAccess:
    """Tests for document permission checks."""

    @pytest.fixture
    def controller(self) -> AccessController:
        return AccessController()

    def test_anyone_signed_in_may_create(self, controller, owner: Principal) -> None:
        decision = controller.check_document(owner, None, Action.CREATE)

        assert decision.allowed
        assert decision.reason == "signed_in"

    @pytest.mark.parametrize("action", [Action.UPDATE, Action.SUBMIT, Action.DELETE])
    def test_owner_only(
        self, controller, owner: Principal, other_user: Principal, admin: Principal, action
    ) -> None:
        assert controller.check_document(owner, owner.id, action).allowed
        assert not controller.check_document(other_user, owner.id, action).allowed
        assert not controller.check_document(admin, owner.id, action).allowed

    @pytest.mark.parametrize("action", [Action.APPROVE, Action.REJECT])
    def test_decisions_admin_only(self, controller, owner: Principal, admin: Principal, action) -> None:
        """Owning a document does not allow deciding it."""
        assert controller.check_document(admin, owner.id, action).allowed
        denied = controller.check_document(owner, owner.id, action)
        assert not denied.allowed
        assert denied.reason == "admin_only"

    def test_to_error(self, controller, other_user: Principal) -> None:
        decision = controller.check_document(other_user, "kim", Action.SUBMIT)

        error = controller.to_error(other_user, decision, "doc_1")

        assert isinstance(error, PermissionDeniedError)
        assert error.principal_id == "lee"
        assert error.action == "submit"
        assert error.record_id == "doc_1"


class TestBoardAccess:
    """Tests for task and comment permission checks."""

    def test_owner_or_admin(self, owner: Principal, other_user: Principal, admin: Principal) -> None:
        controller = AccessController(TaskEditPolicy.OWNER_OR_ADMIN)

        assert controller.check_board_entry(owner, "kim", Action.DELETE).allowed
        assert controller.check_board_entry(admin, "kim", Action.DELETE).reason == "admin"
        denied = controller.check_board_entry(other_user, "kim", Action.UPDATE)
        assert not denied.allowed
        assert denied.reason == "owner_or_admin_only"

    def test_shared(self, other_user: Principal) -> None:
        controller = AccessController(TaskEditPolicy.SHARED)

        decision = controller.check_board_entry(other_user, "kim", Action.TOGGLE)

        assert decision.allowed
        assert decision.reason == "shared_board"
