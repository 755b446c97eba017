"""
Shared daily task board.

Tasks are partitioned by board date. "Today" is the calendar date at a
fixed UTC offset (UTC+9 by default) so every client agrees on the date
regardless of its local timezone.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta

from .. import id_utils
from ..access.permissions import Action
from ..exceptions import AuthenticationRequiredError
from ..identity.types import Principal
from ..records.normalize import parse_date
from ..records.task import TaskItem, TaskStatus
from ..session import SessionContext
from ..synced.store import SyncedRecordStore, WriteResult

logger = logging.getLogger(__name__)


@dataclass
class TaskStats:
    """Status counts with whole-number percentages."""

    total: int = 0
    waiting: int = 0
    in_progress: int = 0
    done: int = 0
    waiting_pct: int = 0
    in_progress_pct: int = 0
    done_pct: int = 0


def _percent(count: int, total: int) -> int:
    # Half-up rounding, so 2/8 -> 25 and 1/8 -> 13
    return 0 if total == 0 else math.floor(count * 100 / total + 0.5)


class TaskBoard:
    """Date-navigable view over the shared task collection."""

    def __init__(self, store: SyncedRecordStore[TaskItem], context: SessionContext):
        self.store = store
        self.context = context
        self.current_date = self.today()

    # -- date navigation ---------------------------------------------------

    def today(self) -> str:
        return self.context.clock.today(self.context.config.board_utc_offset_hours).isoformat()

    def set_date(self, value: date | str) -> str:
        self.current_date = parse_date(value)
        return self.current_date

    def prev_date(self) -> str:
        previous = date.fromisoformat(self.current_date) - timedelta(days=1)
        self.current_date = previous.isoformat()
        return self.current_date

    def next_date(self) -> str:
        """Move one day forward, never past today."""
        following = (date.fromisoformat(self.current_date) + timedelta(days=1)).isoformat()
        if following > self.today():
            return self.current_date
        self.current_date = following
        return self.current_date

    def is_today(self) -> bool:
        return self.current_date == self.today()

    # -- queries -----------------------------------------------------------

    async def tasks(self, owner_filter: str | None = None) -> list[TaskItem]:
        """Tasks for the current date, optionally for one owner."""
        tasks = await self.store.load(self.current_date)
        if owner_filter:
            tasks = [t for t in tasks if t.owner_id == owner_filter]
        return tasks

    @staticmethod
    def stats(tasks: list[TaskItem]) -> TaskStats:
        total = len(tasks)
        waiting = sum(1 for t in tasks if t.status == TaskStatus.WAITING)
        in_progress = sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS)
        done = sum(1 for t in tasks if t.status == TaskStatus.DONE)
        return TaskStats(
            total=total,
            waiting=waiting,
            in_progress=in_progress,
            done=done,
            waiting_pct=_percent(waiting, total),
            in_progress_pct=_percent(in_progress, total),
            done_pct=_percent(done, total),
        )

    async def stats_by_user(self, user_ids: list[str]) -> dict[str, TaskStats]:
        tasks = await self.store.load(self.current_date)
        return {uid: self.stats([t for t in tasks if t.owner_id == uid]) for uid in user_ids}

    # -- mutations ---------------------------------------------------------

    async def add_task(self, text: str, workflow_ref: str | None = None) -> WriteResult[TaskItem]:
        """Add a task for the current date.

        Blank text is refused with a failed result carrying no error.
        """
        if not text or not text.strip():
            return WriteResult(success=False)
        try:
            principal = await self.context.principal()
        except AuthenticationRequiredError as e:
            return WriteResult.failed(e)

        task = TaskItem(
            id=id_utils.task_id(),
            text=text.strip(),
            status=TaskStatus.WAITING,
            owner_id=principal.id,
            date=self.current_date,
            workflow_ref=workflow_ref or None,
            created_at=self.context.clock.now(),
        )
        return await self.store.save(task)

    async def cycle_status(self, task_id: str) -> WriteResult[TaskItem]:
        """Advance waiting -> in progress -> done -> waiting."""
        return await self._edit(
            task_id, Action.UPDATE, lambda t: dataclasses.replace(t, status=t.status.next())
        )

    async def update_memo(self, task_id: str, memo: str) -> WriteResult[TaskItem]:
        return await self._edit(task_id, Action.UPDATE, lambda t: dataclasses.replace(t, memo=memo))

    async def delete_task(self, task_id: str) -> WriteResult[TaskItem]:
        try:
            principal = await self.context.principal()
        except AuthenticationRequiredError as e:
            return WriteResult.failed(e)

        def _guard(current: TaskItem) -> None:
            self._check(principal, current, Action.DELETE)

        return await self.store.delete(task_id, self.current_date, guard=_guard)

    async def _edit(self, task_id: str, action: Action, change) -> WriteResult[TaskItem]:
        try:
            principal = await self.context.principal()
        except AuthenticationRequiredError as e:
            return WriteResult.failed(e)

        def _apply(current: TaskItem) -> TaskItem:
            self._check(principal, current, action)
            return change(current)

        return await self.store.update(task_id, _apply, self.current_date)

    def _check(self, principal: Principal, task: TaskItem, action: Action) -> None:
        decision = self.context.access.check_board_entry(principal, task.owner_id, action)
        if not decision.allowed:
            logger.info(f"{principal.id} may not {action.value} task {task.id}: {decision.reason}")
            raise self.context.access.to_error(principal, decision, task.id)
