"""Shared fixtures: storage backends, a controllable clock, and an API client."""
import os
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from api.main import create_app
from core.config import Settings
from core.identity import ServerSecret
from core.redis import RedisClient
from core.sessions import InMemorySessionStore
from services.storage import FileStorage, MemoryStorage, SQLiteStorage, StorageBackend
from support import FakeClock, FakeTime, LoginFn

TEST_SECRET = "test-server-secret"
ADMIN_TOKEN = "test-admin-token"
REDIS_TEST_URL = os.getenv("REDIS_TEST_URL", "redis://localhost:6379/15")


def build_backend(kind: str, tmp_path: Path, clock: FakeClock) -> StorageBackend:
    if kind == "memory":
        return MemoryStorage(clock)
    if kind == "file":
        return FileStorage(tmp_path / "data", clock)
    return SQLiteStorage(f"sqlite+aiosqlite:///{tmp_path / 'snippets.db'}", clock)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture(params=["memory", "file", "sqlite"])
async def storage(
    request: pytest.FixtureRequest, tmp_path: Path, clock: FakeClock,
) -> AsyncIterator[StorageBackend]:
    """Every embedded backend, initialized on an empty data location."""
    backend = build_backend(request.param, tmp_path, clock)
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        storage_backend="memory",
        session_secret=TEST_SECRET,
        admin_token=ADMIN_TOKEN,
        dev_mode=False,
        max_request_bytes=10_000,
    )


@pytest.fixture
async def app_storage(clock: FakeClock) -> AsyncIterator[MemoryStorage]:
    backend = MemoryStorage(clock)
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
def session_store(fake_time: FakeTime) -> InMemorySessionStore:
    return InMemorySessionStore(session_duration=3600, max_sessions_per_user=5, clock=fake_time)


@pytest.fixture
def app(
    settings: Settings, app_storage: MemoryStorage, session_store: InMemorySessionStore,
) -> FastAPI:
    """Application with startup state installed directly (no lifespan run)."""
    application = create_app(settings)
    application.state.storage = app_storage
    application.state.session_store = session_store
    application.state.server_secret = ServerSecret(settings.session_secret)
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def login(client: AsyncClient) -> LoginFn:
    """Return a coroutine function that logs in and returns the response body."""

    async def _login(pin: str = "1234", passphrase: str = "correcthorsebattery") -> dict:
        response = await client.post("/auth/login", json={"pin": pin, "passphrase": passphrase})
        assert response.status_code == 200, response.text
        return response.json()

    return _login


@pytest.fixture
async def auth_headers(login: LoginFn) -> dict[str, str]:
    """Session header for user A."""
    body = await login()
    return {"session-token": body["session_token"]}


@pytest.fixture
async def other_auth_headers(login: LoginFn) -> dict[str, str]:
    """Session header for user B."""
    body = await login(pin="987654", passphrase="another-passphrase")
    return {"session-token": body["session_token"]}


@pytest.fixture
async def redis_client() -> AsyncIterator[RedisClient]:
    """Live Redis on a scratch database; skipped when no server is reachable."""
    client = RedisClient(REDIS_TEST_URL)
    await client.connect()
    if not client.is_connected:
        pytest.skip("Redis server not available")
    await client.flushdb()
    yield client
    await client.flushdb()
    await client.close()
