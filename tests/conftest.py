"""
Shared test configuration and fixtures.

Provides a remote store that can be slowed down, taken offline or told to
reject writes, plus principals, a pinned clock and a ready-made session
context.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from resolution_sync.clock import DeterministicClock
from resolution_sync.config import SyncConfig
from resolution_sync.exceptions import RemoteRejectedError
from resolution_sync.identity import Principal, Role, StaticAuthGate
from resolution_sync.local import MemoryCache
from resolution_sync.realtime import EventBus
from resolution_sync.remote import InMemoryRemoteStore
from resolution_sync.session import SessionContext

logger = logging.getLogger(__name__)

# 2026-10-19 12:00 in UTC+9
PINNED_TIME = datetime(2026, 10, 19, 3, 0, tzinfo=UTC)


class FlakyRemote(InMemoryRemoteStore):
    """
    In-memory remote with knobs for failure scenarios.

    - read_delay / write_delay: seconds to sleep before answering
    - reject_writes: answer every write with RemoteRejectedError
    - set_online(False): every call raises RemoteUnavailableError
    """

    def __init__(self, tables: list[str] | None = None):
        super().__init__(tables)
        self.read_delay = 0.0
        self.write_delay = 0.0
        self.reject_writes = False
        self.select_calls = 0
        self.upsert_calls = 0

    async def select(self, table: str, *args: Any, **kwargs: Any) -> list[dict[str, Any]]:
        self.select_calls += 1
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        return await super().select(table, *args, **kwargs)

    async def upsert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self.upsert_calls += 1
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        if self.reject_writes:
            raise RemoteRejectedError("upsert", table, "permission denied for table", "42501")
        return await super().upsert(table, rows)

    async def delete(self, table: str, row_id: str) -> bool:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        if self.reject_writes:
            raise RemoteRejectedError("delete", table, "permission denied for table", "42501")
        return await super().delete(table, row_id)


class EventRecorder:
    """Collects events published on a bus."""

    def __init__(self, bus: EventBus, event_type: type):
        self.events: list[Any] = []
        bus.subscribe(event_type, self.events.append)


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def remote() -> FlakyRemote:
    return FlakyRemote()


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(PINNED_TIME)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def owner() -> Principal:
    return Principal(id="kim", role=Role.USER, name="Kim", dept="Finance")


@pytest.fixture
def other_user() -> Principal:
    return Principal(id="lee", role=Role.USER, name="Lee", dept="Planning")


@pytest.fixture
def admin() -> Principal:
    return Principal(id="park", role=Role.ADMIN, name="Park", dept="Office")


@pytest.fixture
def config(temp_dir: Path) -> SyncConfig:
    return SyncConfig(
        cache_dir=temp_dir / "cache",
        document_load_timeout=0.2,
        task_load_timeout=0.2,
        comment_load_timeout=0.2,
        write_timeout=0.2,
    )


@pytest.fixture
def make_context(config: SyncConfig, bus: EventBus, clock: DeterministicClock):
    """Build a SessionContext signed in as the given principal."""

    def _make(principal: Principal | None) -> SessionContext:
        return SessionContext(auth=StaticAuthGate(principal), config=config, bus=bus, clock=clock)

    return _make
