"""Tests for record types and row normalization."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from resolution_sync.records import (
    Approval,
    Comment,
    CommentStatus,
    Document,
    DocumentStatus,
    FormType,
    TaskItem,
    TaskStatus,
    normalize_row,
    parse_date,
    parse_enum,
    parse_timestamp,
)
from resolution_sync.records.document import DOCUMENT_ALIASES

NOW = datetime(2026, 10, 19, 3, 0, tzinfo=UTC)


def _document(**overrides) -> Document:
    values = {
        "id": "doc_1",
        "form_type": FormType.EXPENSE,
        "fields": {"amount": 120000, "purpose": "workshop"},
        "status": DocumentStatus.DRAFT,
        "owner_id": "kim",
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return Document(**values)


class TestNormalizeRow:
    """Tests for the normalization adapter."""

    def test_case_and_underscore_variants(self) -> None:
        """userId, userid and user_id all land on owner_id."""
        for key in ("userId", "userid", "user_id", "authorId", "ownerId"):
            row = normalize_row({key: "kim"}, DOCUMENT_ALIASES)
            assert row["owner_id"] == "kim"

    def test_canonical_name_wins_over_alias(self) -> None:
        """A canonical spelling takes priority over an alias."""
        row = normalize_row({"owner_id": "kim", "authorId": "lee"}, DOCUMENT_ALIASES)
        assert row["owner_id"] == "kim"

    def test_unknown_keys_dropped(self) -> None:
        """Keys outside the alias table are not carried over."""
        row = normalize_row({"id": "doc_1", "password": "secret"}, DOCUMENT_ALIASES)
        assert row == {"id": "doc_1"}

    def test_rejects_non_mapping(self) -> None:
        """Non-mapping rows raise TypeError."""
        with pytest.raises(TypeError):
            normalize_row(["id", "doc_1"], DOCUMENT_ALIASES)  # type: ignore[arg-type]


class TestParsers:
    """Tests for value parsers."""

    def test_parse_enum_accepts_value_and_name(self) -> None:
        assert parse_enum(DocumentStatus, "submitted") is DocumentStatus.SUBMITTED
        assert parse_enum(DocumentStatus, "SUBMITTED") is DocumentStatus.SUBMITTED

    def test_parse_enum_legacy_labels(self) -> None:
        """Labels written by the Korean UI are understood."""
        from resolution_sync.records.document import LEGACY_STATUS_LABELS

        assert parse_enum(DocumentStatus, "반려", LEGACY_STATUS_LABELS) is DocumentStatus.REJECTED

    def test_parse_enum_unknown(self) -> None:
        with pytest.raises(ValueError):
            parse_enum(DocumentStatus, "archived")

    def test_parse_timestamp_variants(self) -> None:
        """Z suffix, offsets and naive values all become aware UTC."""
        assert parse_timestamp("2026-10-19T03:00:00Z") == NOW
        assert parse_timestamp("2026-10-19T12:00:00+09:00") == NOW
        assert parse_timestamp("2026-10-19T03:00:00") == NOW

    def test_parse_timestamp_unparseable(self) -> None:
        """Locale-formatted times from the old UI parse to None."""
        assert parse_timestamp("오후 03:00") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None

    def test_parse_date(self) -> None:
        assert parse_date("2026-10-19T10:00:00Z") == "2026-10-19"
        assert parse_date(NOW) == "2026-10-19"
        with pytest.raises(ValueError):
            parse_date("yesterday")


class TestDocument:
    """Tests for Document."""

    def test_to_row_uses_remote_schema(self) -> None:
        """Remote rows use the camelCase documents columns."""
        row = _document().to_row()

        assert row["formType"] == "expense_resolution"
        assert row["data"] == {"amount": 120000, "purpose": "workshop"}
        assert row["ownerId"] == "kim"
        assert row["approvedBy"] == ""

    def test_from_remote_row(self) -> None:
        """A remote row with flat approval columns decodes to an Approval."""
        row = {
            "id": "doc_9",
            "formType": "income_resolution",
            "data": {"amount": 5},
            "status": "승인",
            "authorId": "kim",
            "authorName": "Kim",
            "createdAt": "2026-10-18T01:00:00Z",
            "updatedAt": "2026-10-19T01:00:00Z",
            "approvalComment": "ok",
            "approvedBy": "park",
            "approvedAt": "2026-10-19T01:00:00Z",
        }

        document = Document.from_dict(row)

        assert document.form_type is FormType.INCOME
        assert document.status is DocumentStatus.APPROVED
        assert document.owner_name == "Kim"
        assert document.approval is not None
        assert document.approval.by == "park"
        assert document.approval.comment == "ok"

    def test_stale_approval_columns_ignored_for_draft(self) -> None:
        """Approval is present only for approved or rejected documents."""
        row = _document().to_row()
        row["approvedBy"] = "park"
        row["approvalComment"] = "old"

        document = Document.from_dict(row)

        assert document.approval is None

    def test_decided_row_without_approver_gets_stamp(self) -> None:
        """A rejected row with blank approval columns still carries an Approval."""
        row = _document().to_row()
        row["status"] = "rejected"
        row["approvalComment"] = "missing receipt"

        document = Document.from_dict(row)

        assert document.approval is not None
        assert document.approval.by == ""
        assert document.approval.at == document.updated_at
        assert document.approval.comment == "missing receipt"

    def test_cache_shape_roundtrip(self) -> None:
        """The cache shape decodes back to an equal document."""
        original = _document(
            status=DocumentStatus.REJECTED,
            approval=Approval(by="park", at=NOW, comment="insufficient"),
        )

        assert Document.from_dict(original.to_dict()) == original

    def test_missing_created_at(self) -> None:
        row = _document().to_row()
        row["createdAt"] = ""
        with pytest.raises(ValueError):
            Document.from_dict(row)


class TestTaskItem:
    """Tests for TaskItem."""

    def test_status_cycle(self) -> None:
        """waiting -> in_progress -> done -> waiting."""
        assert TaskStatus.WAITING.next() is TaskStatus.IN_PROGRESS
        assert TaskStatus.IN_PROGRESS.next() is TaskStatus.DONE
        assert TaskStatus.DONE.next() is TaskStatus.WAITING

    def test_from_lowercase_remote_row(self) -> None:
        """The tasks table uses lower-case column names."""
        row = {
            "id": "task_1",
            "text": "Prepare receipts",
            "status": "진행",
            "userid": "kim",
            "workflowid": "",
            "memo": "",
            "createdat": "오후 03:00",
            "date": "2026-10-19",
        }

        task = TaskItem.from_dict(row)

        assert task.owner_id == "kim"
        assert task.status is TaskStatus.IN_PROGRESS
        assert task.workflow_ref is None
        assert task.created_at is None
        assert task.partition() == "2026-10-19"

    def test_unknown_status_falls_back_to_waiting(self) -> None:
        task = TaskItem.from_dict({"id": "t", "status": "blocked", "userid": "kim", "date": "2026-10-19"})
        assert task.status is TaskStatus.WAITING

    def test_to_row(self) -> None:
        task = TaskItem(
            id="task_1",
            text="Review",
            status=TaskStatus.DONE,
            owner_id="kim",
            date="2026-10-19",
            workflow_ref="doc_1",
        )

        row = task.to_row()

        assert row["userid"] == "kim"
        assert row["workflowid"] == "doc_1"
        assert row["status"] == "done"


class TestComment:
    """Tests for Comment."""

    def test_toggle(self) -> None:
        assert CommentStatus.PENDING.toggled() is CommentStatus.COMPLETED
        assert CommentStatus.COMPLETED.toggled() is CommentStatus.PENDING

    def test_from_remote_row_defaults_pending(self) -> None:
        """Rows without a status are pending."""
        comment = Comment.from_dict(
            {
                "id": "cmt_1",
                "date": "2026-10-19",
                "content": "Submit receipts by Friday",
                "userid": "park",
                "updatedat": "2026-10-19T03:00:00Z",
            }
        )

        assert comment.author_id == "park"
        assert comment.status is CommentStatus.PENDING
        assert comment.updated_at == NOW
