"""Tests for session tokens and the session stores."""
import asyncio

import pytest

from core.config import Settings
from core.identity import is_valid_session_token
from core.redis import RedisClient
from core.sessions import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionSweeper,
    build_session_store,
    create_session_token,
)
from support import FakeTime


def test__create_session_token__is_64_hex_and_unique() -> None:
    tokens = {create_session_token() for _ in range(100)}
    assert len(tokens) == 100
    assert all(is_valid_session_token(t) for t in tokens)


class TestInMemorySessionStore:
    """Tests for the process-local session store."""

    async def test__create_session__resolves_to_user(self, session_store: InMemorySessionStore) -> None:
        token = await session_store.create_session("user-a")
        session = await session_store.get_session(token)
        assert session is not None
        assert session.user_id == "user-a"
        assert session.expires_at - session.created_at == 3600

    async def test__get_session__valid_until_expiry(
        self, fake_time: FakeTime, session_store: InMemorySessionStore,
    ) -> None:
        token = await session_store.create_session("user-a")
        fake_time.advance(3599)
        assert await session_store.get_session(token) is not None
        fake_time.advance(1)
        assert await session_store.get_session(token) is None
        # Expired lookups also drop the session
        assert len(session_store) == 0

    async def test__get_session__unknown_or_malformed(self, session_store: InMemorySessionStore) -> None:
        assert await session_store.get_session(None) is None
        assert await session_store.get_session("not-a-token") is None
        assert await session_store.get_session("a" * 64) is None

    async def test__create_session__sixth_evicts_oldest(self, session_store: InMemorySessionStore) -> None:
        tokens = [await session_store.create_session("user-a") for _ in range(5)]
        sixth = await session_store.create_session("user-a")

        assert await session_store.get_session(tokens[0]) is None
        for token in [*tokens[1:], sixth]:
            assert await session_store.get_session(token) is not None

    async def test__create_session__cap_is_per_user(self, session_store: InMemorySessionStore) -> None:
        other = await session_store.create_session("user-b")
        for _ in range(6):
            await session_store.create_session("user-a")
        assert await session_store.get_session(other) is not None

    async def test__remove_session__revokes_one(self, session_store: InMemorySessionStore) -> None:
        first = await session_store.create_session("user-a")
        second = await session_store.create_session("user-a")
        assert await session_store.remove_session(first) is True
        assert await session_store.remove_session(first) is False
        assert await session_store.get_session(first) is None
        assert await session_store.get_session(second) is not None

    async def test__remove_all_sessions__revokes_only_that_user(
        self, session_store: InMemorySessionStore,
    ) -> None:
        a1 = await session_store.create_session("user-a")
        a2 = await session_store.create_session("user-a")
        b1 = await session_store.create_session("user-b")
        await session_store.remove_all_sessions("user-a")
        assert await session_store.get_session(a1) is None
        assert await session_store.get_session(a2) is None
        assert await session_store.get_session(b1) is not None

    async def test__sweep_expired__removes_only_expired(
        self, fake_time: FakeTime, session_store: InMemorySessionStore,
    ) -> None:
        old = await session_store.create_session("user-a")
        fake_time.advance(1800)
        fresh = await session_store.create_session("user-b")
        fake_time.advance(1800)

        assert await session_store.sweep_expired() == 1
        assert len(session_store) == 1
        assert await session_store.get_session(old) is None
        assert await session_store.get_session(fresh) is not None

    async def test__removed_token_frees_capacity(self, session_store: InMemorySessionStore) -> None:
        tokens = [await session_store.create_session("user-a") for _ in range(5)]
        await session_store.remove_session(tokens[4])
        await session_store.create_session("user-a")
        assert await session_store.get_session(tokens[0]) is not None


class TestSessionSweeper:
    """Tests for the background sweep task."""

    async def test__sweeper__runs_periodically_and_stops(
        self, fake_time: FakeTime, session_store: InMemorySessionStore,
    ) -> None:
        await session_store.create_session("user-a")
        fake_time.advance(7200)

        sweeper = SessionSweeper(session_store, interval=0.01)
        sweeper.start()
        assert sweeper.is_running
        for _ in range(100):
            if len(session_store) == 0:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert len(session_store) == 0
        assert not sweeper.is_running

    async def test__sweeper__survives_store_errors(self, caplog: pytest.LogCaptureFixture) -> None:
        class BrokenStore(InMemorySessionStore):
            calls = 0

            async def sweep_expired(self) -> int:
                BrokenStore.calls += 1
                raise RuntimeError("boom")

        sweeper = SessionSweeper(BrokenStore(), interval=0.01)
        sweeper.start()
        for _ in range(100):
            if BrokenStore.calls >= 2:
                break
            await asyncio.sleep(0.01)
        assert sweeper.is_running
        await sweeper.stop()
        assert BrokenStore.calls >= 2
        assert "session_sweep_failed" in caplog.text


class TestBuildSessionStore:
    """Tests for session store selection."""

    def test__build_session_store__memory_by_default(self) -> None:
        store = build_session_store(Settings(_env_file=None, session_duration_hours=2))
        assert isinstance(store, InMemorySessionStore)
        assert store.session_duration == 7200
        assert store.max_sessions_per_user == 5

    async def test__build_session_store__redis_unavailable_falls_back(self) -> None:
        client = RedisClient("redis://localhost:6379", enabled=False)
        await client.connect()
        store = build_session_store(Settings(_env_file=None, session_store="redis"), client)
        assert isinstance(store, InMemorySessionStore)


class TestRedisSessionStore:
    """Tests against a live Redis server (skipped when unavailable)."""

    @pytest.fixture
    def redis_store(self, redis_client: RedisClient, fake_time: FakeTime) -> RedisSessionStore:
        return RedisSessionStore(
            redis_client, session_duration=3600, max_sessions_per_user=5, clock=fake_time,
        )

    async def test__redis_store__create_and_resolve(self, redis_store: RedisSessionStore) -> None:
        token = await redis_store.create_session("user-a")
        session = await redis_store.get_session(token)
        assert session is not None
        assert session.user_id == "user-a"

    async def test__redis_store__expiry_uses_clock(
        self, fake_time: FakeTime, redis_store: RedisSessionStore,
    ) -> None:
        token = await redis_store.create_session("user-a")
        fake_time.advance(3600)
        assert await redis_store.get_session(token) is None

    async def test__redis_store__sixth_evicts_oldest(self, redis_store: RedisSessionStore) -> None:
        tokens = [await redis_store.create_session("user-a") for _ in range(6)]
        assert await redis_store.get_session(tokens[0]) is None
        for token in tokens[1:]:
            assert await redis_store.get_session(token) is not None

    async def test__redis_store__remove_and_remove_all(self, redis_store: RedisSessionStore) -> None:
        a1 = await redis_store.create_session("user-a")
        a2 = await redis_store.create_session("user-a")
        b1 = await redis_store.create_session("user-b")

        assert await redis_store.remove_session(a1) is True
        assert await redis_store.get_session(a1) is None

        await redis_store.remove_all_sessions("user-a")
        assert await redis_store.get_session(a2) is None
        assert await redis_store.get_session(b1) is not None

    async def test__redis_store__sweep_prunes_user_index(
        self, redis_client: RedisClient, redis_store: RedisSessionStore,
    ) -> None:
        token = await redis_store.create_session("user-a")
        # Simulate Redis expiring the payload key
        await redis_client.delete(f"session:{token}")
        assert await redis_store.sweep_expired() == 1
        assert await redis_client.zrange("user_sessions:user-a") == []


class TestRedisSessionStoreUnavailable:
    """Tests for a Redis store whose server cannot be reached."""

    @pytest.fixture
    async def offline_store(self, fake_time: FakeTime) -> RedisSessionStore:
        client = RedisClient("redis://localhost:6379", enabled=False)
        await client.connect()
        return RedisSessionStore(
            client, session_duration=3600, max_sessions_per_user=5, clock=fake_time,
        )

    async def test__create_session__reports_unrecorded_session(
        self, offline_store: RedisSessionStore,
    ) -> None:
        assert await offline_store.create_session("user-a") is None

    async def test__get_session__fails_closed(self, offline_store: RedisSessionStore) -> None:
        assert await offline_store.get_session(create_session_token()) is None
