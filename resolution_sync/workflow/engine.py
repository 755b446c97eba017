"""
Approval workflow engine.

State machine over the document collection. Every mutation checks the
acting principal's permission and the document's current status against
the freshest snapshot, then goes through the synced store. Failures come
back as ``WriteResult(success=False, error=...)``; nothing is raised to
the caller.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

from ..access.permissions import Action
from ..exceptions import AuthenticationRequiredError, ResolutionSyncError
from ..id_utils import document_id
from ..identity.types import Principal
from ..records.document import DECIDED_STATUSES, Approval, Document, DocumentStatus, FormType
from ..records.normalize import parse_date, parse_enum
from ..session import SessionContext
from ..synced.store import SyncedRecordStore, WriteResult
from .transitions import target_status

logger = logging.getLogger(__name__)

Mutation = Callable[[Document, DocumentStatus | None, Principal], Document]


class WorkflowEngine:
    """Document lifecycle and permissions on top of a SyncedRecordStore."""

    def __init__(self, store: SyncedRecordStore[Document], context: SessionContext):
        self.store = store
        self.context = context

    # -- mutations ---------------------------------------------------------

    async def create(self, form_type: FormType | str, fields: Mapping[str, Any]) -> WriteResult[Document]:
        """Create a draft owned by the current principal."""
        try:
            principal = await self.context.principal()
        except AuthenticationRequiredError as e:
            return WriteResult.failed(e)

        decision = self.context.access.check_document(principal, None, Action.CREATE)
        if not decision.allowed:
            return WriteResult.failed(self.context.access.to_error(principal, decision))

        try:
            parsed_type = parse_enum(FormType, form_type)
        except ValueError as e:
            raise ValueError(f"Unknown form type: {form_type!r}") from e

        now = self.context.clock.now()
        document = Document(
            id=document_id(),
            form_type=parsed_type,
            fields=dict(fields),
            status=DocumentStatus.DRAFT,
            owner_id=principal.id,
            owner_name=principal.name or None,
            created_at=now,
            updated_at=now,
        )
        result = await self.store.save(document)
        logger.info(f"Created {parsed_type.value} document {document.id} for {principal.id}")
        return result

    async def update(self, doc_id: str, fields: Mapping[str, Any]) -> WriteResult[Document]:
        """Replace a draft's fields, or send a rejected document back to draft."""
        new_fields = dict(fields)

        def _apply(current: Document, target: DocumentStatus | None, principal: Principal) -> Document:
            return dataclasses.replace(
                current,
                fields=new_fields,
                status=target or DocumentStatus.DRAFT,
                approval=None,
                updated_at=self.context.clock.now(),
            )

        return await self._transition(doc_id, Action.UPDATE, _apply)

    async def submit(self, doc_id: str) -> WriteResult[Document]:
        """Submit a draft for approval."""

        def _apply(current: Document, target: DocumentStatus | None, principal: Principal) -> Document:
            return dataclasses.replace(
                current,
                status=target or DocumentStatus.SUBMITTED,
                updated_at=self.context.clock.now(),
            )

        return await self._transition(doc_id, Action.SUBMIT, _apply)

    async def approve(self, doc_id: str, comment: str = "") -> WriteResult[Document]:
        """Approve a submitted document (admin only)."""
        return await self._decide(doc_id, Action.APPROVE, comment)

    async def reject(self, doc_id: str, comment: str = "") -> WriteResult[Document]:
        """Reject a submitted document (admin only)."""
        return await self._decide(doc_id, Action.REJECT, comment)

    async def delete(self, doc_id: str) -> WriteResult[Document]:
        """Delete a draft."""
        try:
            principal = await self.context.principal()
        except AuthenticationRequiredError as e:
            return WriteResult.failed(e)

        def _guard(current: Document) -> None:
            self._check(principal, current, Action.DELETE)

        result = await self.store.delete(doc_id, guard=_guard)
        self._log_result(doc_id, Action.DELETE, principal, result)
        return result

    # -- queries -----------------------------------------------------------

    async def refresh(self) -> list[Document]:
        """Reload documents from the remote (cache on failure)."""
        return await self.store.load()

    async def get(self, doc_id: str) -> Document | None:
        return await self.store.get(doc_id)

    async def list_all(self) -> list[Document]:
        """All documents, most recently updated first."""
        return _newest_first(await self._documents())

    async def list_by_owner(self, owner_id: str) -> list[Document]:
        return _newest_first([d for d in await self._documents() if d.owner_id == owner_id])

    async def pending(self) -> list[Document]:
        """Submitted documents awaiting a decision, oldest first."""
        submitted = [d for d in await self._documents() if d.status == DocumentStatus.SUBMITTED]
        return sorted(submitted, key=lambda d: d.updated_at)

    async def pending_count(self) -> int:
        return len(await self.pending())

    async def history(self, owner_id: str | None = None) -> list[Document]:
        """Approved and rejected documents, most recent decision first."""
        decided = [
            d
            for d in await self._documents()
            if d.status in DECIDED_STATUSES and (owner_id is None or d.owner_id == owner_id)
        ]
        return sorted(decided, key=lambda d: d.approval.at if d.approval else d.updated_at, reverse=True)

    async def filtered(
        self,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        status: DocumentStatus | str | None = None,
        owner_id: str | None = None,
    ) -> list[Document]:
        """Documents created within [start_date, end_date] (UTC dates, inclusive).

        Any filter left as None matches everything.
        """
        start = parse_date(start_date) if start_date else None
        end = parse_date(end_date) if end_date else None
        wanted = parse_enum(DocumentStatus, status) if status else None

        matches = []
        for document in await self._documents():
            created = document.created_at.date().isoformat()
            if owner_id and document.owner_id != owner_id:
                continue
            if wanted and document.status != wanted:
                continue
            if start and created < start:
                continue
            if end and created > end:
                continue
            matches.append(document)
        return _newest_first(matches)

    # -- internals ---------------------------------------------------------

    async def _documents(self) -> list[Document]:
        if None not in self.store.active_partitions:
            return await self.store.load()
        return self.store.records()

    async def _decide(self, doc_id: str, action: Action, comment: str) -> WriteResult[Document]:
        def _apply(current: Document, target: DocumentStatus | None, principal: Principal) -> Document:
            now = self.context.clock.now()
            return dataclasses.replace(
                current,
                status=target or current.status,
                approval=Approval(by=principal.id, at=now, comment=comment),
                updated_at=now,
            )

        return await self._transition(doc_id, action, _apply)

    async def _transition(self, doc_id: str, action: Action, mutate: Mutation) -> WriteResult[Document]:
        try:
            principal = await self.context.principal()
        except AuthenticationRequiredError as e:
            return WriteResult.failed(e)

        def _apply(current: Document) -> Document:
            target = self._check(principal, current, action)
            return mutate(current, target, principal)

        result = await self.store.update(doc_id, _apply)
        self._log_result(doc_id, action, principal, result)
        return result

    def _check(self, principal: Principal, current: Document, action: Action) -> DocumentStatus | None:
        """Permission first, then the transition table.

        Raises:
            PermissionDeniedError: If the principal may not act on the document
            InvalidTransitionError: If the action is illegal from the current status
        """
        decision = self.context.access.check_document(principal, current.owner_id, action)
        if not decision.allowed:
            raise self.context.access.to_error(principal, decision, current.id)
        return target_status(current, action)

    @staticmethod
    def _log_result(
        doc_id: str,
        action: Action,
        principal: Principal,
        result: WriteResult[Document],
    ) -> None:
        if result.success:
            logger.info(f"{principal.id} {action.value} {doc_id} (synced={result.synced})")
        elif isinstance(result.error, ResolutionSyncError):
            logger.info(f"{principal.id} could not {action.value} {doc_id}: {result.error.message}")


def _newest_first(documents: list[Document]) -> list[Document]:
    return sorted(documents, key=lambda d: d.updated_at, reverse=True)
