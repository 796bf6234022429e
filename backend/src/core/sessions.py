"""
Bearer session tokens bound to derived user ids.

Tokens live only in the session store (process memory or Redis), never in the
storage backend. Every operation is non-throwing: an unknown, malformed, or
expired token is simply "no session".
"""
import asyncio
import contextlib
import json
import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import asdict, dataclass

from core.config import Settings
from core.identity import is_valid_session_token
from core.logging import redact
from core.redis import RedisClient

logger = logging.getLogger(__name__)

DEFAULT_SESSION_DURATION = 24 * 60 * 60
DEFAULT_MAX_SESSIONS_PER_USER = 5
DEFAULT_SWEEP_INTERVAL = 60 * 60


def create_session_token() -> str:
    """Cryptographically random 32-byte token, hex encoded."""
    return secrets.token_hex(32)


@dataclass(frozen=True)
class Session:
    """An active login. Times are epoch seconds."""

    token: str
    user_id: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Sessions are valid strictly before expires_at."""
        return now >= self.expires_at


class SessionStore(ABC):
    """Issues, resolves, and revokes session tokens."""

    def __init__(
        self,
        session_duration: float = DEFAULT_SESSION_DURATION,
        max_sessions_per_user: int = DEFAULT_MAX_SESSIONS_PER_USER,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session_duration = session_duration
        self.max_sessions_per_user = max_sessions_per_user
        self._clock = clock

    @abstractmethod
    async def create_session(self, user_id: str) -> str | None:
        """
        Create a session and return its token, evicting the user's oldest over the cap.

        Returns None when the store could not record the session.
        """

    @abstractmethod
    async def get_session(self, token: str | None) -> Session | None:
        """Resolve a token, or None if unknown or expired."""

    @abstractmethod
    async def remove_session(self, token: str) -> bool:
        """Revoke one token. Returns whether it existed."""

    @abstractmethod
    async def remove_all_sessions(self, user_id: str) -> None:
        """Revoke every token of a user."""

    @abstractmethod
    async def sweep_expired(self) -> int:
        """Drop expired tokens and return how many were removed."""

    async def close(self) -> None:  # noqa: B027
        """Release resources held by the store."""


class InMemorySessionStore(SessionStore):
    """
    Process-local session store.

    The token map and per-user token index are only touched under one lock, so
    a request handler can never observe a token halfway through eviction.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        # Insertion ordered: first entry is the oldest session of the user
        self._user_sessions: dict[str, OrderedDict[str, None]] = {}

    async def create_session(self, user_id: str) -> str:
        token = create_session_token()
        now = self._clock()
        session = Session(
            token=token,
            user_id=user_id,
            created_at=now,
            expires_at=now + self.session_duration,
        )
        with self._lock:
            self._sessions[token] = session
            tokens = self._user_sessions.setdefault(user_id, OrderedDict())
            tokens[token] = None
            evicted = 0
            while len(tokens) > self.max_sessions_per_user:
                old_token, _ = tokens.popitem(last=False)
                self._sessions.pop(old_token, None)
                evicted += 1
        if evicted:
            logger.info(
                "sessions_evicted",
                extra={"user_id": redact(user_id), "count": evicted},
            )
        return token

    async def get_session(self, token: str | None) -> Session | None:
        if not is_valid_session_token(token):
            return None
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.is_expired(self._clock()):
                self._remove_locked(token)
                return None
            return session

    async def remove_session(self, token: str) -> bool:
        with self._lock:
            return self._remove_locked(token)

    async def remove_all_sessions(self, user_id: str) -> None:
        with self._lock:
            tokens = self._user_sessions.pop(user_id, None)
            for token in tokens or ():
                self._sessions.pop(token, None)

    async def sweep_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [t for t, s in self._sessions.items() if s.is_expired(now)]
            for token in expired:
                self._remove_locked(token)
        if expired:
            logger.info("sessions_swept", extra={"count": len(expired)})
        return len(expired)

    def _remove_locked(self, token: str) -> bool:
        session = self._sessions.pop(token, None)
        if session is None:
            return False
        tokens = self._user_sessions.get(session.user_id)
        if tokens is not None:
            tokens.pop(token, None)
            if not tokens:
                del self._user_sessions[session.user_id]
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class RedisSessionStore(SessionStore):
    """
    Session store shared between processes through Redis.

    Session payloads are stored with a TTL so Redis itself reclaims expired
    tokens; the per-user sorted set is pruned by sweep_expired(). If Redis is
    unavailable, lookups resolve to no session.
    """

    SESSION_PREFIX = "session:"
    USER_PREFIX = "user_sessions:"
    SEQUENCE_KEY = "session_seq"

    def __init__(self, redis_client: RedisClient, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._redis = redis_client

    def _session_key(self, token: str) -> str:
        return f"{self.SESSION_PREFIX}{token}"

    def _user_key(self, user_id: str) -> str:
        return f"{self.USER_PREFIX}{user_id}"

    async def create_session(self, user_id: str) -> str | None:
        token = create_session_token()
        now = self._clock()
        session = Session(
            token=token,
            user_id=user_id,
            created_at=now,
            expires_at=now + self.session_duration,
        )
        ttl = max(1, int(self.session_duration))
        sha = self._redis.create_session_sha
        if sha is None:
            logger.warning("redis_unavailable", extra={"operation": "create_session"})
            return None
        evicted = await self._redis.evalsha(
            sha,
            3,
            self._session_key(token),
            self._user_key(user_id),
            self.SEQUENCE_KEY,
            token,
            json.dumps(asdict(session)),
            ttl,
            self.max_sessions_per_user,
            self.SESSION_PREFIX,
        )
        if evicted is None:
            logger.warning("redis_unavailable", extra={"operation": "create_session"})
            return None
        if evicted:
            logger.info(
                "sessions_evicted",
                extra={"user_id": redact(user_id), "count": evicted},
            )
        return token

    async def get_session(self, token: str | None) -> Session | None:
        if not is_valid_session_token(token):
            return None
        raw = await self._redis.get(self._session_key(token))
        if raw is None:
            return None
        try:
            session = Session(**json.loads(raw))
        except (TypeError, ValueError):
            logger.warning("session_payload_invalid", extra={"token": redact(token)})
            await self._redis.delete(self._session_key(token))
            return None
        if session.is_expired(self._clock()):
            await self._remove(session)
            return None
        return session

    async def remove_session(self, token: str) -> bool:
        if not is_valid_session_token(token):
            return False
        raw = await self._redis.get(self._session_key(token))
        if raw is None:
            return False
        try:
            session = Session(**json.loads(raw))
        except (TypeError, ValueError):
            return await self._redis.delete(self._session_key(token))
        return await self._remove(session)

    async def remove_all_sessions(self, user_id: str) -> None:
        user_key = self._user_key(user_id)
        tokens = await self._redis.zrange(user_key)
        keys = [self._session_key(t.decode() if isinstance(t, bytes) else t) for t in tokens]
        await self._redis.delete(*keys, user_key)

    async def sweep_expired(self) -> int:
        removed = 0
        for user_key in await self._redis.scan_keys(f"{self.USER_PREFIX}*"):
            stale = []
            for member in await self._redis.zrange(user_key):
                token = member.decode() if isinstance(member, bytes) else member
                if not await self._redis.exists(self._session_key(token)):
                    stale.append(token)
            if stale:
                await self._redis.zrem(user_key, *stale)
                removed += len(stale)
        if removed:
            logger.info("sessions_swept", extra={"count": removed})
        return removed

    async def _remove(self, session: Session) -> bool:
        deleted = await self._redis.delete(self._session_key(session.token))
        await self._redis.zrem(self._user_key(session.user_id), session.token)
        return deleted


class SessionSweeper:
    """Background task that periodically reclaims expired sessions."""

    def __init__(self, store: SessionStore, interval: float = DEFAULT_SWEEP_INTERVAL) -> None:
        self._store = store
        self._interval = interval
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        """Whether the sweep loop is scheduled."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="session-sweeper")

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._store.sweep_expired()
            except Exception:
                logger.exception("session_sweep_failed")


def build_session_store(
    settings: Settings,
    redis_client: RedisClient | None = None,
) -> SessionStore:
    """Select the session store once at startup."""
    options = {
        "session_duration": settings.session_duration_seconds,
        "max_sessions_per_user": settings.max_sessions_per_user,
    }
    if settings.session_store == "redis":
        if redis_client is None or not redis_client.is_connected:
            logger.warning(
                "redis_session_store_unavailable",
                extra={"detail": "falling back to in-memory sessions"},
            )
            return InMemorySessionStore(**options)
        return RedisSessionStore(redis_client, **options)
    return InMemorySessionStore(**options)
