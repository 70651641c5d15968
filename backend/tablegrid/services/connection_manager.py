"""Registry of live WebSocket connections, keyed by session token.

One token may have several sockets (tabs, windows). When the session store
reports a token gone, each socket gets a sessionExpired event and is closed
with code 4002. The expiry callback only schedules that work; the session
store calls it synchronously and must not wait on network I/O.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable

from fastapi import WebSocket

from tablegrid.core.config import settings
from tablegrid.core.metrics import (
    websocket_connections_active,
    websocket_messages_sent_total,
)
from tablegrid.services.session_store import SessionExpiryNotifier

logger = logging.getLogger(__name__)

WS_CLOSE_UNAUTHORIZED = 4001
WS_CLOSE_SESSION_EXPIRED = 4002


class ConnectionManager:
    """Tracks sockets per token and closes them when their session ends."""

    def __init__(self, notifier: SessionExpiryNotifier):
        self._notifier = notifier
        self._connections: dict[str, set[WebSocket]] = {}
        self._tokens: dict[WebSocket, str] = {}
        self._unsubscribers: dict[WebSocket, Callable[[], None]] = {}
        self._pending: set[asyncio.Task] = set()
        self._heartbeat_task: asyncio.Task | None = None

    def connection_count(self, token: str | None = None) -> int:
        if token is None:
            return len(self._tokens)
        return len(self._connections.get(token, ()))

    async def connect(self, websocket: WebSocket, token: str) -> None:
        """Accept the socket and register it for the token's expiry."""
        await websocket.accept()
        self.register(websocket, token)

    def register(self, websocket: WebSocket, token: str) -> None:
        self._connections.setdefault(token, set()).add(websocket)
        self._tokens[websocket] = token
        self._unsubscribers[websocket] = self._notifier.listen(
            token, self._on_session_expired
        )
        websocket_connections_active.inc()
        logger.info("WebSocket registered (%d for this session)", len(self._connections[token]))

    def disconnect(self, websocket: WebSocket) -> None:
        """Forget a socket. Safe to call more than once."""
        token = self._tokens.pop(websocket, None)
        unsubscribe = self._unsubscribers.pop(websocket, None)
        if unsubscribe is not None:
            unsubscribe()
        if token is None:
            return

        sockets = self._connections.get(token)
        if sockets is not None:
            sockets.discard(websocket)
            if not sockets:
                del self._connections[token]
        websocket_connections_active.dec()
        logger.info("WebSocket unregistered")

    async def send_event(self, websocket: WebSocket, event: str, payload: dict) -> None:
        await websocket.send_json({"event": event, "payload": payload})
        websocket_messages_sent_total.labels(event=event).inc()

    def _on_session_expired(self, token: str) -> None:
        sockets = list(self._connections.get(token, ()))
        for websocket in sockets:
            # Drop bookkeeping now; the close itself happens in a task
            self.disconnect(websocket)
            task = asyncio.get_running_loop().create_task(self._close_expired(websocket))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        if sockets:
            logger.info("Closing %d WebSocket(s) for ended session", len(sockets))

    async def _close_expired(self, websocket: WebSocket) -> None:
        try:
            await self.send_event(websocket, "sessionExpired", {})
            await websocket.close(code=WS_CLOSE_SESSION_EXPIRED, reason="Session expired")
        except Exception as e:
            logger.debug("Closing expired WebSocket failed: %s", e)

    async def wait_closed(self) -> None:
        """Wait for scheduled session-expired closes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _heartbeat_loop(self, interval: float) -> None:
        """Ping every socket; sockets that cannot be written to are dropped."""
        logger.info("Starting WebSocket heartbeat loop (interval: %ss)", interval)
        while True:
            try:
                await asyncio.sleep(interval)

                dead: set[WebSocket] = set()
                for ws in list(self._tokens):
                    try:
                        await self.send_event(ws, "ping", {"timestamp": time.time()})
                    except Exception as e:
                        logger.debug("Heartbeat failed for WebSocket: %s", e)
                        dead.add(ws)

                for ws in dead:
                    self.disconnect(ws)
                if dead:
                    logger.info("Heartbeat removed %d dead connections", len(dead))

            except asyncio.CancelledError:
                logger.info("WebSocket heartbeat loop cancelled")
                break
            except Exception as e:
                logger.error("Error in WebSocket heartbeat loop: %s", e)

    def start_heartbeat(self, interval: float | None = None) -> None:
        interval = interval if interval is not None else settings.grid.ws_heartbeat_interval
        if interval <= 0:
            return
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(interval))

    async def stop_heartbeat(self) -> None:
        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._heartbeat_task
        self._heartbeat_task = None
