"""Append-only comment stream for the task board."""

from __future__ import annotations

import dataclasses
from datetime import date

from .. import id_utils
from ..access.permissions import Action
from ..exceptions import AuthenticationRequiredError
from ..identity.types import Principal
from ..records.normalize import parse_date
from ..records.task import Comment, CommentStatus
from ..session import SessionContext
from ..synced.store import SyncedRecordStore, WriteResult
from .tasks import TaskBoard


class CommentStream:
    """Comments for the board's dates. No edit-in-place: toggle or delete only."""

    def __init__(self, store: SyncedRecordStore[Comment], context: SessionContext, board: TaskBoard):
        self.store = store
        self.context = context
        self.board = board

    def _date(self, value: date | str | None) -> str:
        return parse_date(value) if value else self.board.current_date

    async def comments(self, on: date | str | None = None) -> list[Comment]:
        """Comments for a date (the board's current date by default), oldest first."""
        comments = await self.store.load(self._date(on))
        return sorted(comments, key=lambda c: c.updated_at)

    async def add(self, content: str, on: date | str | None = None) -> WriteResult[Comment]:
        if not content or not content.strip():
            return WriteResult(success=False)
        try:
            principal = await self.context.principal()
        except AuthenticationRequiredError as e:
            return WriteResult.failed(e)

        comment = Comment(
            id=id_utils.comment_id(),
            date=self._date(on),
            content=content.strip(),
            author_id=principal.id,
            status=CommentStatus.PENDING,
            updated_at=self.context.clock.now(),
        )
        return await self.store.save(comment)

    async def toggle(self, comment_id: str, on: date | str | None = None) -> WriteResult[Comment]:
        """Flip pending <-> completed."""
        try:
            principal = await self.context.principal()
        except AuthenticationRequiredError as e:
            return WriteResult.failed(e)

        def _apply(current: Comment) -> Comment:
            self._check(principal, current, Action.TOGGLE)
            return dataclasses.replace(
                current,
                status=current.status.toggled(),
                updated_at=self.context.clock.now(),
            )

        return await self.store.update(comment_id, _apply, self._date(on))

    async def delete(self, comment_id: str, on: date | str | None = None) -> WriteResult[Comment]:
        try:
            principal = await self.context.principal()
        except AuthenticationRequiredError as e:
            return WriteResult.failed(e)

        def _guard(current: Comment) -> None:
            self._check(principal, current, Action.DELETE)

        return await self.store.delete(comment_id, self._date(on), guard=_guard)

    def _check(self, principal: Principal, comment: Comment, action: Action) -> None:
        decision = self.context.access.check_board_entry(principal, comment.author_id, action)
        if not decision.allowed:
            raise self.context.access.to_error(principal, decision, comment.id)
