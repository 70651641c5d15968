"""In-memory session store with sliding-window expiry.

Lifecycle per token: absent -> active -> expired | destroyed. A session
expires when it has been idle for longer than the timeout; every successful
validate() or touch() restarts the idle clock.

All map mutations happen under one lock. Expiry listeners run after the
lock is released but before the mutating call returns, so a destroy is
fully observed by listeners by the time destroy_session() comes back.
Listeners must not do network I/O; they schedule work instead.
"""

import asyncio
import contextlib
import logging
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from tablegrid.core.config import settings
from tablegrid.core.metrics import sessions_active, sessions_expired_total
from tablegrid.schemas.table import DEFAULT_PATH_PREFIX, ServerSpec

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[str], None]


@dataclass
class ConnectionDetails:
    host: str
    port: int
    namespace: str
    username: str
    password: str
    path_prefix: str = ""
    use_https: bool = False


@dataclass
class SessionRecord:
    host: str
    port: int
    namespace: str
    username: str
    password: str
    path_prefix: str
    use_https: bool
    created_at: float
    last_activity: float

    @property
    def server_spec(self) -> ServerSpec:
        return ServerSpec(
            scheme="https" if self.use_https else "http",
            host=self.host,
            port=self.port,
            path_prefix=self.path_prefix or DEFAULT_PATH_PREFIX,
        )

    def __repr__(self) -> str:
        return (
            f"SessionRecord(username={self.username!r}, namespace={self.namespace!r}, "
            f"created_at={self.created_at}, last_activity={self.last_activity})"
        )


class SessionExpiryNotifier:
    """Fan-out of "this token is gone" to interested parties.

    listen() registers for one token and returns an unsubscribe callable;
    subscribe() registers for every token. Token listeners are dropped once
    notified since a token never comes back.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_token: dict[str, list[ExpiryCallback]] = {}
        self._global: list[ExpiryCallback] = []

    def listen(self, token: str, callback: ExpiryCallback) -> Callable[[], None]:
        with self._lock:
            self._by_token.setdefault(token, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._by_token.get(token)
                if not callbacks:
                    return
                with contextlib.suppress(ValueError):
                    callbacks.remove(callback)
                if not callbacks:
                    del self._by_token[token]

        return unsubscribe

    def subscribe(self, callback: ExpiryCallback) -> Callable[[], None]:
        with self._lock:
            self._global.append(callback)

        def unsubscribe() -> None:
            with self._lock, contextlib.suppress(ValueError):
                self._global.remove(callback)

        return unsubscribe

    def listener_count(self, token: str) -> int:
        with self._lock:
            return len(self._by_token.get(token, ()))

    def notify(self, token: str) -> None:
        with self._lock:
            callbacks = self._by_token.pop(token, []) + list(self._global)
        for callback in callbacks:
            try:
                callback(token)
            except Exception:
                logger.exception("Session expiry listener failed")


class SessionStore:
    """Owns every SessionRecord. Tokens are opaque and unguessable."""

    def __init__(
        self,
        timeout: float | None = None,
        cleanup_interval: float | None = None,
        clock: Callable[[], float] = time.time,
        notifier: SessionExpiryNotifier | None = None,
    ):
        self._timeout = float(
            timeout if timeout is not None else settings.session.session_timeout
        )
        self._cleanup_interval = (
            cleanup_interval
            if cleanup_interval is not None
            else settings.session.session_cleanup_interval
        )
        self._clock = clock
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()
        self._sweeper_task: asyncio.Task | None = None
        self.notifier = notifier or SessionExpiryNotifier()

    @property
    def timeout(self) -> float:
        return self._timeout

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _is_expired(self, record: SessionRecord, now: float) -> bool:
        return now - record.last_activity > self._timeout

    def _remove_locked(self, token: str) -> SessionRecord | None:
        record = self._sessions.pop(token, None)
        if record is not None:
            record.password = ""
            sessions_active.set(len(self._sessions))
        return record

    def _expired(self, token: str, record: SessionRecord, reason: str) -> None:
        sessions_expired_total.labels(reason=reason).inc()
        logger.info("Session %s for %s", reason, record.username)
        self.notifier.notify(token)

    def create_session(self, details: ConnectionDetails) -> str:
        token = secrets.token_urlsafe(32)
        now = self._clock()
        record = SessionRecord(
            host=details.host,
            port=details.port,
            namespace=details.namespace,
            username=details.username,
            password=details.password,
            path_prefix=details.path_prefix or "",
            use_https=bool(details.use_https),
            created_at=now,
            last_activity=now,
        )
        with self._lock:
            self._sessions[token] = record
            sessions_active.set(len(self._sessions))
        logger.info("Session created for %s", details.username)
        return token

    def _check(self, token: str | None) -> SessionRecord | None:
        if not token:
            return None
        expired: SessionRecord | None = None
        with self._lock:
            record = self._sessions.get(token)
            if record is None:
                return None
            now = self._clock()
            if self._is_expired(record, now):
                expired = self._remove_locked(token)
            else:
                record.last_activity = now
                return record
        self._expired(token, expired, "expired")
        return None

    def validate(self, token: str | None) -> SessionRecord | None:
        """Return the live record and restart its idle clock, or None."""
        return self._check(token)

    def touch(self, token: str | None) -> bool:
        return self._check(token) is not None

    def peek(self, token: str | None) -> SessionRecord | None:
        """Look up without refreshing activity or expiring."""
        if not token:
            return None
        with self._lock:
            return self._sessions.get(token)

    def timeout_remaining(self, record: SessionRecord) -> float:
        return max(0.0, self._timeout - (self._clock() - record.last_activity))

    def destroy_session(self, token: str | None) -> bool:
        if not token:
            return False
        with self._lock:
            record = self._remove_locked(token)
        if record is None:
            return False
        self._expired(token, record, "destroyed")
        return True

    def cleanup_expired_sessions(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [
                token
                for token, record in self._sessions.items()
                if self._is_expired(record, now)
            ]
            removed = [(token, self._remove_locked(token)) for token in stale]
        for token, record in removed:
            self._expired(token, record, "expired")
        if removed:
            logger.info("Cleaned up %d expired session(s)", len(removed))
        return len(removed)

    def destroy_all(self) -> int:
        with self._lock:
            removed = [(token, self._remove_locked(token)) for token in list(self._sessions)]
        for token, record in removed:
            self._expired(token, record, "shutdown")
        return len(removed)

    async def _sweep_loop(self, interval: float) -> None:
        logger.info("Starting session sweeper (interval: %ss)", interval)
        while True:
            try:
                await asyncio.sleep(interval)
                self.cleanup_expired_sessions()
            except asyncio.CancelledError:
                logger.info("Session sweeper cancelled")
                break
            except Exception:
                logger.exception("Error in session sweeper")

    def start_sweeper(self) -> None:
        if self._cleanup_interval <= 0:
            return
        if self._sweeper_task is None or self._sweeper_task.done():
            self._sweeper_task = asyncio.create_task(
                self._sweep_loop(self._cleanup_interval)
            )

    async def stop_sweeper(self) -> None:
        if self._sweeper_task and not self._sweeper_task.done():
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task
        self._sweeper_task = None
