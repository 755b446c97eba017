"""
Change-feed relay client.

Receives row-level change events pushed by a hosted relay, using either
Server-Sent Events (SSE) or a WebSocket connection, and dispatches the raw
payloads to per-table subscribers.

Payloads follow the ``postgres_changes`` shape:

    {"eventType": "INSERT", "table": "tasks", "new": {...}, "old": {...}}
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from ..exceptions import RemoteUnavailableError
from .base import ChangeCallback, StatusCallback, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)

# Blank line ending an SSE event (CRLF, LF or CR line endings)
_EVENT_SEPARATOR = re.compile(rb"\r\n\r\n|\n\n|\r\r")


class ChangeFeedClient:
    """Client for a push change relay.

    Supports two modes:
    1. SSE (Server-Sent Events) - HTTP-based, works through proxies
    2. WebSocket - Lower latency, bidirectional

    Example:
        >>> feed = ChangeFeedClient("https://relay.example.com/realtime", api_key="...")
        >>> sub = await feed.subscribe("tasks", on_change)
        >>> # payloads arrive in the background
        >>> await sub.unsubscribe()
    """

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        use_websocket: bool = False,
        auto_reconnect: bool = True,
        reconnect_delay: float = 5.0,
    ) -> None:
        """Initialize the change feed client.

        Args:
            url: Base URL of the change relay
            api_key: Optional bearer token for the relay
            use_websocket: Use WebSocket instead of SSE
            auto_reconnect: Automatically reconnect on disconnect
            reconnect_delay: Seconds to wait before reconnecting
        """
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.use_websocket = use_websocket
        self.auto_reconnect = auto_reconnect
        self.reconnect_delay = reconnect_delay

        self._callbacks: dict[str, list[ChangeCallback]] = {}
        self._status_callbacks: dict[str, list[StatusCallback]] = {}
        self._running = False
        self._connection_task: asyncio.Task[None] | None = None

    @property
    def tables(self) -> list[str]:
        return sorted(t for t, callbacks in self._callbacks.items() if callbacks)

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        on_status: StatusCallback | None = None,
    ) -> Subscription:
        """Subscribe to changes on a table and make sure the connection runs."""
        self._callbacks.setdefault(table, []).append(callback)
        if on_status:
            self._status_callbacks.setdefault(table, []).append(on_status)
        logger.debug(f"Subscribed to table: {table}")

        if self._running:
            # Reconnect so the relay learns about the new table
            await self._restart()
        else:
            await self.start()

        async def _unsubscribe() -> None:
            callbacks = self._callbacks.get(table, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if on_status and on_status in self._status_callbacks.get(table, []):
                self._status_callbacks[table].remove(on_status)
                on_status(SubscriptionStatus.CLOSED, None)
            if not self.tables:
                await self.stop()

        return Subscription(table, _unsubscribe)

    async def start(self) -> None:
        """Start the connection loop."""
        if self._running:
            return

        self._running = True
        self._connection_task = asyncio.create_task(self._connection_loop())
        logger.info(f"Change feed client started: {self.url}")

    async def stop(self) -> None:
        """Stop the connection loop."""
        self._running = False

        if self._connection_task:
            self._connection_task.cancel()
            try:
                await self._connection_task
            except asyncio.CancelledError:
                pass
            self._connection_task = None

        logger.info("Change feed client stopped")

    async def _restart(self) -> None:
        await self.stop()
        await self.start()

    def is_connected(self) -> bool:
        """Check if the client is connected."""
        return self._running and self._connection_task is not None

    async def _connection_loop(self) -> None:
        """Main connection loop with auto-reconnect."""
        while self._running:
            try:
                if self.use_websocket:
                    await self._websocket_loop()
                else:
                    await self._sse_loop()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Change feed connection error: {e}")
                self._notify_status(SubscriptionStatus.CHANNEL_ERROR, str(e))

                if self.auto_reconnect and self._running:
                    logger.info(f"Reconnecting in {self.reconnect_delay}s...")
                    await asyncio.sleep(self.reconnect_delay)
                else:
                    break

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key
        return headers

    async def _sse_loop(self) -> None:
        """SSE connection loop."""
        headers = {"Accept": "text/event-stream", **self._headers()}
        params = {"tables": ",".join(self.tables)}

        async with aiohttp.ClientSession() as session:
            async with session.get(f"{self.url}/events", headers=headers, params=params) as response:
                if response.status != 200:
                    raise RemoteUnavailableError(
                        "subscribe", cause=ConnectionError(f"SSE status {response.status}")
                    )

                self._notify_status(SubscriptionStatus.SUBSCRIBED, None)

                async for payload in self._parse_sse_stream(response.content):
                    await self.dispatch(payload)

        self._notify_status(SubscriptionStatus.CLOSED, None)

    async def _websocket_loop(self) -> None:
        """WebSocket connection loop."""
        async with aiohttp.ClientSession() as session:
            async with session.ws_connect(f"{self.url}/ws", headers=self._headers()) as ws:
                await ws.send_json({"type": "subscribe", "tables": self.tables})
                self._notify_status(SubscriptionStatus.SUBSCRIBED, None)

                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        try:
                            payload = json.loads(msg.data)
                        except json.JSONDecodeError:
                            logger.warning(f"Dropping non-JSON change message: {msg.data!r}")
                            continue
                        await self.dispatch(payload)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise RemoteUnavailableError(
                            "subscribe", cause=ConnectionError(f"WebSocket error: {ws.exception()}")
                        )

        self._notify_status(SubscriptionStatus.CLOSED, None)

    async def _parse_sse_stream(self, content: Any) -> AsyncIterator[Any]:
        """Parse SSE stream into payloads.

        Chunks are buffered as bytes and only complete events are decoded,
        so a multi-byte character split across chunks survives.
        """
        buffer = b""

        async for chunk in content.iter_any():
            buffer += chunk

            while True:
                match = _EVENT_SEPARATOR.search(buffer)
                if match is None:
                    break
                event_bytes, buffer = buffer[: match.start()], buffer[match.end() :]
                payload = parse_sse_event(event_bytes.decode("utf-8", errors="replace"))
                if payload is not None:
                    yield payload

    async def dispatch(self, payload: Any) -> None:
        """Hand a payload to the subscribers of its table.

        Payloads without a recognizable table are handed to every
        subscriber; filtering malformed input is the subscriber's job.
        """
        table = payload.get("table") if isinstance(payload, dict) else None
        if isinstance(table, str) and table in self._callbacks:
            targets = list(self._callbacks[table])
        elif table is None:
            targets = [cb for callbacks in self._callbacks.values() for cb in callbacks]
        else:
            logger.debug(f"Ignoring change for unsubscribed table: {table}")
            return

        for callback in targets:
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Change subscriber failed")

    def _notify_status(self, status: SubscriptionStatus, error: str | None) -> None:
        for callbacks in self._status_callbacks.values():
            for on_status in list(callbacks):
                on_status(status, error)


def parse_sse_event(event_str: str) -> Any | None:
    """Parse a single SSE event block into its JSON data payload."""
    data_lines = []
    for line in event_str.splitlines():
        if line.startswith("data:"):
            data_lines.append(line[5:].strip())

    if not data_lines:
        return None

    data = "\n".join(data_lines)
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse SSE data: {data}")
        return None
