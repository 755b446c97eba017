"""
Resolution documents.

A Document is one expense/income/substitute resolution. Its ``fields`` are
owned by the form layer and passed through untouched; the core only cares
about identity, ownership, lifecycle status and the approval stamp.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .base import SyncedRecord
from .normalize import format_timestamp, normalize_row, parse_enum, parse_timestamp


class FormType(Enum):
    """Closed set of resolution form variants."""

    EXPENSE = "expense_resolution"
    INCOME = "income_resolution"
    SUBSTITUTE = "substitute_resolution"


class DocumentStatus(Enum):
    """Lifecycle states of a document."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


# Labels written by older Korean-language clients
LEGACY_STATUS_LABELS = {
    "작성중": DocumentStatus.DRAFT,
    "제출": DocumentStatus.SUBMITTED,
    "승인": DocumentStatus.APPROVED,
    "반려": DocumentStatus.REJECTED,
}

DECIDED_STATUSES = frozenset({DocumentStatus.APPROVED, DocumentStatus.REJECTED})

DOCUMENT_ALIASES: dict[str, tuple[str, ...]] = {
    "id": (),
    "form_type": ("formType", "type"),
    "fields": ("data",),
    "status": (),
    "owner_id": ("ownerId", "authorId", "userId"),
    "owner_name": ("ownerName", "authorName", "userName"),
    "created_at": ("createdAt",),
    "updated_at": ("updatedAt",),
    "approval": (),
    "approval_comment": ("approvalComment",),
    "approved_by": ("approvedBy",),
    "approved_at": ("approvedAt",),
}


@dataclass
class Approval:
    """Decision stamp set when a document is approved or rejected."""

    by: str
    at: datetime
    comment: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"by": self.by, "at": self.at.isoformat(), "comment": self.comment}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Approval:
        at = parse_timestamp(data.get("at"))
        if at is None:
            raise ValueError("Approval requires a timestamp")
        return cls(by=str(data["by"]), at=at, comment=str(data.get("comment") or ""))


@dataclass
class Document(SyncedRecord):
    """One resolution document.

    Attributes:
        id: Opaque identifier, immutable
        form_type: Form variant, fixed at creation
        fields: Form field values (opaque to the core)
        status: Lifecycle status
        owner_id: Authoring principal, immutable
        created_at: Creation time (UTC)
        updated_at: Last mutation time (UTC)
        owner_name: Display name of the author, if known
        approval: Decision stamp; present iff status is approved/rejected
    """

    id: str
    form_type: FormType
    fields: dict[str, Any]
    status: DocumentStatus
    owner_id: str
    created_at: datetime
    updated_at: datetime
    owner_name: str | None = None
    approval: Approval | None = field(default=None)

    @property
    def is_decided(self) -> bool:
        return self.status in DECIDED_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "form_type": self.form_type.value,
            "fields": dict(self.fields),
            "status": self.status.value,
            "owner_id": self.owner_id,
            "owner_name": self.owner_name,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "approval": self.approval.to_dict() if self.approval else None,
        }

    def to_row(self) -> dict[str, Any]:
        approval = self.approval
        return {
            "id": self.id,
            "formType": self.form_type.value,
            "data": dict(self.fields),
            "status": self.status.value,
            "ownerId": self.owner_id,
            "ownerName": self.owner_name,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "approvalComment": approval.comment if approval else "",
            "approvedBy": approval.by if approval else "",
            "approvedAt": format_timestamp(approval.at) if approval else "",
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Document:
        row = normalize_row(data, DOCUMENT_ALIASES)

        created_at = parse_timestamp(row.get("created_at"))
        if created_at is None:
            raise ValueError("Document requires created_at")
        updated_at = parse_timestamp(row.get("updated_at")) or created_at

        status = parse_enum(DocumentStatus, row.get("status"), LEGACY_STATUS_LABELS)

        approval: Approval | None = None
        if isinstance(row.get("approval"), Mapping):
            approval = Approval.from_dict(row["approval"])
        elif row.get("approved_by"):
            approved_at = parse_timestamp(row.get("approved_at")) or updated_at
            approval = Approval(
                by=str(row["approved_by"]),
                at=approved_at,
                comment=str(row.get("approval_comment") or ""),
            )
        if status not in DECIDED_STATUSES:
            # Flat remote columns keep stale values after a reset to draft
            approval = None
        elif approval is None:
            # Decided rows written without an approver stamp
            approval = Approval(by="", at=updated_at, comment=str(row.get("approval_comment") or ""))

        fields = row.get("fields") or {}
        if not isinstance(fields, Mapping):
            raise TypeError("Document fields must be a mapping")

        return cls(
            id=str(row["id"]),
            form_type=parse_enum(FormType, row.get("form_type")),
            fields=dict(fields),
            status=status,
            owner_id=str(row["owner_id"]),
            created_at=created_at,
            updated_at=updated_at,
            owner_name=row.get("owner_name"),
            approval=approval,
        )
