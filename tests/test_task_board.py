"""Tests for the shared task board and its comment stream."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from conftest import FlakyRemote

from resolution_sync.access import AccessController, TaskEditPolicy
from resolution_sync.board import CommentStream, TaskBoard
from resolution_sync.clock import DeterministicClock
from resolution_sync.exceptions import AuthenticationRequiredError, PermissionDeniedError
from resolution_sync.identity import Principal
from resolution_sync.local import MemoryCache
from resolution_sync.records import CommentStatus, TaskItem, TaskStatus
from resolution_sync.synced import COMMENTS, TASKS, SyncedRecordStore


@pytest.fixture
def task_store(cache: MemoryCache, remote: FlakyRemote) -> SyncedRecordStore[TaskItem]:
    return SyncedRecordStore(TASKS.with_timeout(0.2), cache, remote, write_timeout=0.2)


@pytest.fixture
def comment_store(cache: MemoryCache, remote: FlakyRemote):
    return SyncedRecordStore(COMMENTS.with_timeout(0.2), cache, remote, write_timeout=0.2)


def _task(task_id: str, status: TaskStatus) -> TaskItem:
    return TaskItem(id=task_id, text="t", status=status, owner_id="kim", date="2026-10-19")


class TestDateNavigation:
    """Tests for board date handling."""

    def test_today_uses_board_offset(self, task_store, make_context, owner: Principal) -> None:
        """03:00 UTC is already noon on the board's UTC+9 calendar."""
        board = TaskBoard(task_store, make_context(owner))

        assert board.today() == "2026-10-19"
        assert board.current_date == "2026-10-19"
        assert board.is_today()

    def test_offset_changes_the_day(
        self, task_store, make_context, owner: Principal, clock: DeterministicClock
    ) -> None:
        """16:00 UTC is past midnight in UTC+9."""
        clock.set_time(datetime(2026, 10, 19, 16, 0, tzinfo=UTC))
        board = TaskBoard(task_store, make_context(owner))

        assert board.today() == "2026-10-20"

    def test_prev_and_next(self, task_store, make_context, owner: Principal) -> None:
        board = TaskBoard(task_store, make_context(owner))

        assert board.prev_date() == "2026-10-18"
        assert board.prev_date() == "2026-10-17"
        assert not board.is_today()
        assert board.next_date() == "2026-10-18"

    def test_next_capped_at_today(self, task_store, make_context, owner: Principal) -> None:
        """The board never moves into the future."""
        board = TaskBoard(task_store, make_context(owner))

        assert board.next_date() == "2026-10-19"
        assert board.current_date == "2026-10-19"

    def test_set_date(self, task_store, make_context, owner: Principal) -> None:
        board = TaskBoard(task_store, make_context(owner))

        assert board.set_date("2026-09-01") == "2026-09-01"
        with pytest.raises(ValueError):
            board.set_date("someday")


class TestStats:
    """Tests for status counts."""

    def test_half_up_rounding(self) -> None:
        """1/8 = 12.5% rounds up to 13."""
        tasks = [_task("a", TaskStatus.DONE)] + [_task(str(i), TaskStatus.WAITING) for i in range(7)]

        stats = TaskBoard.stats(tasks)

        assert stats.total == 8
        assert stats.done == 1
        assert stats.done_pct == 13
        assert stats.waiting_pct == 88

    def test_empty(self) -> None:
        stats = TaskBoard.stats([])

        assert stats.total == 0
        assert stats.done_pct == 0

    @pytest.mark.asyncio
    async def test_stats_by_user(
        self, task_store, make_context, owner: Principal, other_user: Principal
    ) -> None:
        mine = TaskBoard(task_store, make_context(owner))
        theirs = TaskBoard(task_store, make_context(other_user))
        await mine.add_task("one")
        await mine.add_task("two")
        await theirs.add_task("three")

        stats = await mine.stats_by_user(["kim", "lee", "choi"])

        assert stats["kim"].total == 2
        assert stats["lee"].total == 1
        assert stats["choi"].total == 0


class TestTaskMutations:
    """Tests for adding and editing tasks."""

    @pytest.mark.asyncio
    async def test_add_task(self, task_store, make_context, owner: Principal, remote: FlakyRemote) -> None:
        board = TaskBoard(task_store, make_context(owner))

        result = await board.add_task("  Prepare receipts  ", workflow_ref="doc_1")

        assert result.success is True
        task = result.record
        assert task.text == "Prepare receipts"
        assert task.status is TaskStatus.WAITING
        assert task.owner_id == "kim"
        assert task.date == "2026-10-19"
        assert task.workflow_ref == "doc_1"
        assert remote.rows("tasks")[0]["userid"] == "kim"
        assert [t.id for t in await board.tasks()] == [task.id]

    @pytest.mark.asyncio
    async def test_blank_text_refused(self, task_store, make_context, owner: Principal) -> None:
        board = TaskBoard(task_store, make_context(owner))

        result = await board.add_task("   ")

        assert result.success is False
        assert result.error is None
        assert await board.tasks() == []

    @pytest.mark.asyncio
    async def test_signed_out(self, task_store, make_context) -> None:
        board = TaskBoard(task_store, make_context(None))

        result = await board.add_task("x")

        assert isinstance(result.error, AuthenticationRequiredError)

    @pytest.mark.asyncio
    async def test_cycle_status(self, task_store, make_context, owner: Principal) -> None:
        board = TaskBoard(task_store, make_context(owner))
        task_id = (await board.add_task("x")).record.id

        statuses = [(await board.cycle_status(task_id)).record.status for _ in range(3)]

        assert statuses == [TaskStatus.IN_PROGRESS, TaskStatus.DONE, TaskStatus.WAITING]

    @pytest.mark.asyncio
    async def test_owner_filter(
        self, task_store, make_context, owner: Principal, other_user: Principal
    ) -> None:
        await TaskBoard(task_store, make_context(owner)).add_task("mine")
        board = TaskBoard(task_store, make_context(other_user))
        await board.add_task("theirs")

        assert [t.text for t in await board.tasks(owner_filter="kim")] == ["mine"]

    @pytest.mark.asyncio
    async def test_other_user_cannot_edit(
        self, task_store, make_context, owner: Principal, other_user: Principal
    ) -> None:
        """Default policy: owner or admin only."""
        task_id = (await TaskBoard(task_store, make_context(owner)).add_task("x")).record.id
        board = TaskBoard(task_store, make_context(other_user))

        memo = await board.update_memo(task_id, "hijack")
        deleted = await board.delete_task(task_id)

        assert isinstance(memo.error, PermissionDeniedError)
        assert isinstance(deleted.error, PermissionDeniedError)
        assert len(await board.tasks()) == 1

    @pytest.mark.asyncio
    async def test_admin_can_edit(self, task_store, make_context, owner: Principal, admin: Principal) -> None:
        task_id = (await TaskBoard(task_store, make_context(owner)).add_task("x")).record.id
        board = TaskBoard(task_store, make_context(admin))

        result = await board.update_memo(task_id, "checked")

        assert result.success is True
        assert result.record.memo == "checked"

    @pytest.mark.asyncio
    async def test_shared_policy(
        self, task_store, make_context, owner: Principal, other_user: Principal
    ) -> None:
        """With the shared policy anyone may edit anyone's task."""
        task_id = (await TaskBoard(task_store, make_context(owner)).add_task("x")).record.id
        context = make_context(other_user)
        context.access = AccessController(TaskEditPolicy.SHARED)
        board = TaskBoard(task_store, context)

        assert (await board.cycle_status(task_id)).success is True
        assert (await board.delete_task(task_id)).success is True

    @pytest.mark.asyncio
    async def test_tasks_follow_current_date(self, task_store, make_context, owner: Principal) -> None:
        board = TaskBoard(task_store, make_context(owner))
        await board.add_task("today")
        board.prev_date()
        await board.add_task("yesterday")

        assert [t.text for t in await board.tasks()] == ["yesterday"]
        board.next_date()
        assert [t.text for t in await board.tasks()] == ["today"]


class TestCommentStream:
    """Tests for board comments."""

    @pytest.mark.asyncio
    async def test_add_and_order(
        self, task_store, comment_store, make_context, admin: Principal, clock: DeterministicClock
    ) -> None:
        context = make_context(admin)
        stream = CommentStream(comment_store, context, TaskBoard(task_store, context))

        await stream.add("Submit receipts by Friday")
        clock.advance(60)
        await stream.add("Budget meeting at 3")

        comments = await stream.comments()

        assert [c.content for c in comments] == ["Submit receipts by Friday", "Budget meeting at 3"]
        assert all(c.status is CommentStatus.PENDING for c in comments)
        assert comments[0].author_id == "park"

    @pytest.mark.asyncio
    async def test_blank_comment_refused(
        self, task_store, comment_store, make_context, owner: Principal
    ) -> None:
        context = make_context(owner)
        stream = CommentStream(comment_store, context, TaskBoard(task_store, context))

        result = await stream.add("")

        assert result.success is False
        assert result.error is None

    @pytest.mark.asyncio
    async def test_toggle_moves_to_end(
        self, task_store, comment_store, make_context, owner: Principal, clock: DeterministicClock
    ) -> None:
        """Toggling bumps updated_at, so the comment sorts last."""
        context = make_context(owner)
        stream = CommentStream(comment_store, context, TaskBoard(task_store, context))
        first = (await stream.add("first")).record.id
        clock.advance(60)
        await stream.add("second")
        clock.advance(60)

        toggled = await stream.toggle(first)

        assert toggled.record.status is CommentStatus.COMPLETED
        assert [c.content for c in await stream.comments()] == ["second", "first"]
        assert (await stream.toggle(first)).record.status is CommentStatus.PENDING

    @pytest.mark.asyncio
    async def test_delete_and_permissions(
        self, task_store, comment_store, make_context, owner: Principal, other_user: Principal
    ) -> None:
        owner_context = make_context(owner)
        mine = CommentStream(comment_store, owner_context, TaskBoard(task_store, owner_context))
        comment_id = (await mine.add("note")).record.id
        other_context = make_context(other_user)
        theirs = CommentStream(comment_store, other_context, TaskBoard(task_store, other_context))

        denied = await theirs.delete(comment_id)
        assert isinstance(denied.error, PermissionDeniedError)

        deleted = await mine.delete(comment_id)
        assert deleted.success is True
        assert await mine.comments() == []

    @pytest.mark.asyncio
    async def test_explicit_date(self, task_store, comment_store, make_context, owner: Principal) -> None:
        context = make_context(owner)
        stream = CommentStream(comment_store, context, TaskBoard(task_store, context))

        result = await stream.add("old note", on="2026-10-01")

        assert result.record.date == "2026-10-01"
        assert await stream.comments() == []
        assert len(await stream.comments(on="2026-10-01")) == 1
