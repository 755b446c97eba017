"""Tests for remote store adapters that run without a network."""

from __future__ import annotations

import json

import pytest
from conftest import FlakyRemote

from resolution_sync.exceptions import RemoteRejectedError, RemoteUnavailableError, SubscriptionError
from resolution_sync.remote import (
    ChangeFeedClient,
    CosmosConfig,
    CosmosRemoteStore,
    InMemoryRemoteStore,
    SubscriptionStatus,
    build_select_query,
    parse_sse_event,
)
from resolution_sync.remote.cosmos import _strip_system_fields


class _ChunkedContent:
    """Stands in for an aiohttp response body delivering fixed chunks."""

    def __init__(self, chunks: list[bytes]):
        self._chunks = chunks

    async def iter_any(self):
        for chunk in self._chunks:
            yield chunk


def _stream_payloads(chunks: list[bytes]):
    client = ChangeFeedClient("https://relay.example.com")
    return client._parse_sse_stream(_ChunkedContent(chunks))


class TestBuildSelectQuery:
    """Tests for Cosmos SQL generation."""

    def test_plain_select(self) -> None:
        assert build_select_query(None, None, False, None) == ("SELECT * FROM c", [])

    def test_filters_are_parameterized(self) -> None:
        """Values never appear in the query text."""
        query, parameters = build_select_query({"date": "2026-10-19", "userid": "kim"}, None, False, None)

        assert query == 'SELECT * FROM c WHERE c["date"] = @p0 AND c["userid"] = @p1'
        assert parameters == [
            {"name": "@p0", "value": "2026-10-19"},
            {"name": "@p1", "value": "kim"},
        ]

    def test_order_and_limit(self) -> None:
        query, _ = build_select_query(None, "createdAt", True, 10)

        assert query == 'SELECT TOP 10 * FROM c ORDER BY c["createdAt"] DESC'

    def test_strip_system_fields(self) -> None:
        row = {"id": "doc_1", "_rid": "x", "_etag": "y", "_ts": 1, "status": "draft"}

        assert _strip_system_fields(row) == {"id": "doc_1", "status": "draft"}


class TestCosmosRemoteStore:
    """Tests for behaviour that needs no connection."""

    @pytest.mark.asyncio
    async def test_subscribe_without_relay(self) -> None:
        """Cosmos has no push feed of its own."""
        store = CosmosRemoteStore(CosmosConfig(endpoint="https://acct.documents.azure.com:443/", key="k"))

        with pytest.raises(SubscriptionError):
            await store.subscribe("tasks", lambda payload: None)


class TestChangeFeedClient:
    """Tests for the change relay client."""

    def test_parse_sse_event(self) -> None:
        event = 'event: change\ndata: {"eventType": "INSERT", "table": "tasks", "new": {"id": "t"}}'

        assert parse_sse_event(event) == {"eventType": "INSERT", "table": "tasks", "new": {"id": "t"}}

    def test_parse_sse_event_invalid(self) -> None:
        assert parse_sse_event(": keepalive") is None
        assert parse_sse_event("data: {broken") is None

    @pytest.mark.asyncio
    async def test_sse_stream_character_split_across_chunks(self) -> None:
        """A UTF-8 character cut between two network chunks still decodes."""
        frame = json.dumps(
            {"eventType": "INSERT", "table": "task_comments", "new": {"content": "결재"}},
            ensure_ascii=False,
        )
        raw = f"data: {frame}\n\n".encode()
        cut = raw.index("결".encode()) + 1

        payloads = [p async for p in _stream_payloads([raw[:cut], raw[cut:]])]

        assert payloads == [{"eventType": "INSERT", "table": "task_comments", "new": {"content": "결재"}}]

    @pytest.mark.asyncio
    async def test_sse_stream_crlf_separators(self) -> None:
        chunks = [b'data: {"table": "tasks"}\r\n\r\ndata: {"table": ', b'"documents"}\r\n\r\n']

        payloads = [p async for p in _stream_payloads(chunks)]

        assert payloads == [{"table": "tasks"}, {"table": "documents"}]

    @pytest.mark.asyncio
    async def test_dispatch_routes_by_table(self) -> None:
        client = ChangeFeedClient("https://relay.example.com")
        tasks: list = []
        comments: list = []
        client._callbacks = {"tasks": [tasks.append], "task_comments": [comments.append]}

        await client.dispatch({"table": "tasks", "eventType": "INSERT"})
        await client.dispatch({"eventType": "DELETE"})
        await client.dispatch({"table": "documents", "eventType": "INSERT"})

        assert len(tasks) == 2
        assert len(comments) == 1

    @pytest.mark.asyncio
    async def test_subscriber_failure_contained(self) -> None:
        client = ChangeFeedClient("https://relay.example.com")
        received: list = []

        def _broken(payload) -> None:
            raise RuntimeError("boom")

        client._callbacks = {"tasks": [_broken, received.append]}

        await client.dispatch({"table": "tasks"})

        assert len(received) == 1


class TestInMemoryRemoteStore:
    """Tests for the in-process remote."""

    @pytest.mark.asyncio
    async def test_filters_match_column_variants(self) -> None:
        remote = InMemoryRemoteStore()
        await remote.upsert("tasks", [{"id": "a", "userId": "kim"}, {"id": "b", "userid": "lee"}])

        rows = await remote.select("tasks", filters={"userid": "kim"})

        assert [r["id"] for r in rows] == ["a"]

    @pytest.mark.asyncio
    async def test_order_and_limit(self) -> None:
        remote = InMemoryRemoteStore()
        await remote.upsert("docs", [{"id": "a", "n": "1"}, {"id": "b", "n": "3"}, {"id": "c", "n": "2"}])

        rows = await remote.select("docs", order_by="n", descending=True, limit=2)

        assert [r["id"] for r in rows] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_unknown_table_rejected(self) -> None:
        remote = InMemoryRemoteStore(tables=["tasks"])

        with pytest.raises(RemoteRejectedError) as exc_info:
            await remote.upsert("task_comment", [{"id": "x"}])

        assert exc_info.value.code == "42P01"

    @pytest.mark.asyncio
    async def test_offline(self, remote: FlakyRemote) -> None:
        remote.set_online(False)

        with pytest.raises(RemoteUnavailableError):
            await remote.select("tasks")

    @pytest.mark.asyncio
    async def test_change_events(self) -> None:
        remote = InMemoryRemoteStore()
        payloads: list = []
        statuses: list = []
        subscription = await remote.subscribe("tasks", payloads.append, lambda s, e: statuses.append(s))

        await remote.upsert("tasks", [{"id": "a"}])
        await remote.upsert("tasks", [{"id": "a", "memo": "x"}])
        await remote.delete("tasks", "a")
        await remote.drain()
        await subscription.unsubscribe()

        assert [p["eventType"] for p in payloads] == ["INSERT", "UPDATE", "DELETE"]
        assert payloads[2]["old"]["memo"] == "x"
        assert statuses == [SubscriptionStatus.SUBSCRIBED, SubscriptionStatus.CLOSED]
        assert subscription.active is False
