"""Session store: creation, sliding expiry, destruction and listeners."""

import asyncio

import pytest

from tablegrid.services.session_store import SessionExpiryNotifier, SessionStore

TIMEOUT = 1800.0


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> SessionStore:
    return SessionStore(timeout=TIMEOUT, cleanup_interval=0, clock=clock)


class TestCreateAndValidate:
    def test_tokens_are_unique_and_opaque(self, store, connection_details):
        tokens = {store.create_session(connection_details) for _ in range(50)}
        assert len(tokens) == 50
        for token in tokens:
            assert len(token) >= 43
            assert connection_details.username not in token

    def test_validate_returns_record(self, store, connection_details):
        token = store.create_session(connection_details)
        record = store.validate(token)
        assert record.username == "_SYSTEM"
        assert record.password == "SYS"
        assert record.server_spec.base_url == "http://iris.local:52773/api/atelier/"

    @pytest.mark.parametrize("token", [None, "", "not-a-token"])
    def test_unknown_tokens(self, store, token):
        assert store.validate(token) is None
        assert store.touch(token) is False

    def test_repr_hides_password(self, store, connection_details):
        record = store.validate(store.create_session(connection_details))
        assert "SYS'" not in repr(record)
        assert "password" not in repr(record)


class TestSlidingExpiry:
    def test_activity_within_window_keeps_session(self, store, clock, connection_details):
        token = store.create_session(connection_details)
        clock.advance(TIMEOUT - 0.001)
        assert store.validate(token) is not None
        # Window restarted by the validate above
        clock.advance(TIMEOUT - 0.001)
        assert store.touch(token) is True

    def test_idle_past_timeout_expires_once(self, store, clock, connection_details):
        expired: list[str] = []
        store.notifier.subscribe(expired.append)
        token = store.create_session(connection_details)

        clock.advance(TIMEOUT + 0.001)
        assert store.validate(token) is None
        assert store.validate(token) is None
        assert expired == [token]
        assert len(store) == 0

    def test_timeout_remaining(self, store, clock, connection_details):
        token = store.create_session(connection_details)
        clock.advance(600)
        record = store.peek(token)
        assert store.timeout_remaining(record) == pytest.approx(TIMEOUT - 600)

    def test_peek_does_not_refresh(self, store, clock, connection_details):
        token = store.create_session(connection_details)
        clock.advance(TIMEOUT - 1)
        store.peek(token)
        clock.advance(2)
        assert store.validate(token) is None


class TestDestroy:
    def test_destroy_notifies_before_returning(self, store, connection_details):
        token = store.create_session(connection_details)
        seen: list[str] = []
        store.notifier.listen(token, seen.append)

        assert store.destroy_session(token) is True
        assert seen == [token]
        assert store.validate(token) is None

    def test_destroy_clears_password(self, store, connection_details):
        token = store.create_session(connection_details)
        record = store.peek(token)
        store.destroy_session(token)
        assert record.password == ""

    def test_destroy_unknown(self, store):
        assert store.destroy_session("missing") is False
        assert store.destroy_session(None) is False

    def test_cleanup_expired_sessions(self, store, clock, connection_details):
        stale = store.create_session(connection_details)
        clock.advance(TIMEOUT / 2)
        fresh = store.create_session(connection_details)
        clock.advance(TIMEOUT / 2 + 1)

        seen: list[str] = []
        store.notifier.subscribe(seen.append)
        assert store.cleanup_expired_sessions() == 1
        assert seen == [stale]
        assert store.peek(fresh) is not None

    def test_destroy_all(self, store, connection_details):
        for _ in range(3):
            store.create_session(connection_details)
        assert store.destroy_all() == 3
        assert len(store) == 0


class TestNotifier:
    def test_unsubscribe(self):
        notifier = SessionExpiryNotifier()
        seen: list[str] = []
        unsubscribe = notifier.listen("t", seen.append)
        assert notifier.listener_count("t") == 1
        unsubscribe()
        unsubscribe()
        assert notifier.listener_count("t") == 0
        notifier.notify("t")
        assert seen == []

    def test_failing_listener_does_not_block_others(self):
        notifier = SessionExpiryNotifier()
        seen: list[str] = []

        def broken(token: str) -> None:
            raise RuntimeError("listener bug")

        notifier.listen("t", broken)
        notifier.listen("t", seen.append)
        notifier.notify("t")
        assert seen == ["t"]

    def test_token_listeners_fire_once(self):
        notifier = SessionExpiryNotifier()
        seen: list[str] = []
        notifier.listen("t", seen.append)
        notifier.notify("t")
        notifier.notify("t")
        assert seen == ["t"]


async def test_sweeper_removes_expired_sessions(connection_details):
    clock = FakeClock()
    store = SessionStore(timeout=10, cleanup_interval=0.01, clock=clock)
    token = store.create_session(connection_details)
    clock.advance(11)

    store.start_sweeper()
    try:
        for _ in range(100):
            if store.peek(token) is None:
                break
            await asyncio.sleep(0.01)
    finally:
        await store.stop_sweeper()

    assert store.peek(token) is None
