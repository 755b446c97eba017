"""
Workspace wiring.

Builds every component from a SyncConfig and an AuthGate:

    workspace = await ResolutionWorkspace.create(SyncConfig.from_environment(), auth)
    await workspace.start()
    result = await workspace.workflow.create(FormType.EXPENSE, {"amount": 120000})
    ...
    await workspace.close()

Without a Cosmos endpoint the workspace runs local-only: writes land in the
cache and report ``synced=False``.
"""

from __future__ import annotations

import logging
from typing import Any

from .board.comments import CommentStream
from .board.tasks import TaskBoard
from .clock import Clock, SystemClock
from .config import SyncConfig
from .identity.provider import AuthGate
from .local.cache import FileCache, LocalCache
from .realtime.events import EventBus
from .realtime.notifier import ChangeNotifier
from .records.document import Document
from .records.task import Comment, TaskItem
from .remote.base import RemoteStore
from .remote.change_feed import ChangeFeedClient
from .remote.cosmos import CosmosRemoteStore
from .session import SessionContext
from .synced.collections import COMMENTS, DOCUMENTS, TASKS, CollectionSpec
from .synced.outbox import PendingWriteQueue
from .synced.store import SyncedRecordStore
from .workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


class ResolutionWorkspace:
    """All components for one signed-in client."""

    def __init__(
        self,
        context: SessionContext,
        cache: LocalCache,
        remote: RemoteStore | None = None,
    ):
        self.context = context
        self.cache = cache
        self.remote = remote

        config = context.config
        self.outbox = PendingWriteQueue(config.resolved_outbox_path) if config.enable_outbox else None

        self.documents: SyncedRecordStore[Document] = self._store(
            DOCUMENTS.with_timeout(config.document_load_timeout)
        )
        self.tasks: SyncedRecordStore[TaskItem] = self._store(TASKS.with_timeout(config.task_load_timeout))
        self.comments: SyncedRecordStore[Comment] = self._store(
            COMMENTS.with_timeout(config.comment_load_timeout)
        )

        self.workflow = WorkflowEngine(self.documents, context)
        self.board = TaskBoard(self.tasks, context)
        self.comment_stream = CommentStream(self.comments, context, self.board)

        self.notifier = ChangeNotifier(remote, context.bus, config.refresh_interval)
        for store in (self.documents, self.tasks, self.comments):
            self.notifier.watch(store)

    @classmethod
    async def create(
        cls,
        config: SyncConfig,
        auth: AuthGate,
        remote: RemoteStore | None = None,
        cache: LocalCache | None = None,
        clock: Clock | None = None,
        bus: EventBus | None = None,
    ) -> ResolutionWorkspace:
        """Create a workspace.

        Args:
            config: Runtime settings
            auth: Source of the signed-in principal
            remote: Remote store to use; built from config when None
            cache: Local cache; a FileCache under config.cache_dir when None
            clock: Time source (system clock by default)
            bus: Event bus (a new one by default)
        """
        if remote is None and config.remote_enabled:
            change_feed = None
            if config.change_feed_url:
                change_feed = ChangeFeedClient(
                    config.change_feed_url,
                    api_key=config.change_feed_api_key,
                    use_websocket=config.change_feed_use_websocket,
                )
            remote = await CosmosRemoteStore.create(config.cosmos_config(), change_feed)
        elif remote is None:
            logger.info("No remote store configured; running local-only")

        context = SessionContext(
            auth=auth,
            config=config,
            bus=bus or EventBus(),
            clock=clock or SystemClock(),
        )
        return cls(context, cache or FileCache(config.cache_dir), remote)

    def _store(self, spec: CollectionSpec[Any]) -> SyncedRecordStore[Any]:
        return SyncedRecordStore(
            spec,
            self.cache,
            self.remote,
            bus=self.context.bus,
            write_timeout=self.context.config.write_timeout,
            cancel_on_timeout=self.context.config.cancel_on_timeout,
            outbox=self.outbox,
        )

    async def start(self) -> None:
        """Load documents and today's board, then start change propagation."""
        await self.documents.load()
        await self.tasks.load(self.board.current_date)
        await self.comments.load(self.board.current_date)
        await self.notifier.start()

    async def flush_pending(self) -> int:
        """Replay queued writes for every collection."""
        delivered = 0
        for store in (self.documents, self.tasks, self.comments):
            delivered += await store.flush_pending()
        return delivered

    async def close(self) -> None:
        await self.notifier.stop()
        for store in (self.documents, self.tasks, self.comments):
            await store.drain()
        if self.remote is not None:
            await self.remote.close()

    async def __aenter__(self) -> ResolutionWorkspace:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
