"""Redis client with connection pooling and graceful fallback."""
import logging
from typing import Any

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# Lua script for session creation with per-user capacity eviction.
# Atomic: a concurrent reader never sees a token that is half evicted.
# KEYS[1] = session key, KEYS[2] = per-user sorted set, KEYS[3] = sequence counter
# ARGV = token, payload, ttl seconds, max sessions, session key prefix
CREATE_SESSION_SCRIPT = """
local session_key = KEYS[1]
local user_key = KEYS[2]
local seq_key = KEYS[3]
local token = ARGV[1]
local payload = ARGV[2]
local ttl = tonumber(ARGV[3])
local max_sessions = tonumber(ARGV[4])
local prefix = ARGV[5]

redis.call('SETEX', session_key, ttl, payload)
-- Sequence numbers keep creation order even within the same millisecond
local seq = redis.call('INCR', seq_key)
redis.call('ZADD', user_key, seq, token)
redis.call('EXPIRE', user_key, ttl)

local count = redis.call('ZCARD', user_key)
local evicted = 0
if count > max_sessions then
    local excess = count - max_sessions
    local oldest = redis.call('ZRANGE', user_key, 0, excess - 1)
    for _, old_token in ipairs(oldest) do
        redis.call('DEL', prefix .. old_token)
    end
    redis.call('ZREMRANGEBYRANK', user_key, 0, excess - 1)
    evicted = #oldest
end
return evicted
"""


class RedisClient:
    """Async Redis client with connection pooling and graceful fallback."""

    def __init__(self, url: str, enabled: bool = True) -> None:
        self._url = url
        self._enabled = enabled
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None
        self._create_session_sha: str | None = None

    async def connect(self) -> None:
        """Initialize connection pool and load Lua scripts."""
        if not self._enabled:
            logger.info("Redis disabled by configuration")
            return
        try:
            self._pool = ConnectionPool.from_url(self._url, max_connections=10)
            self._client = Redis(connection_pool=self._pool)
            # Verify connection
            await self._client.ping()
            await self._load_scripts()
            logger.info("Redis connected successfully")
        except RedisError as e:
            logger.warning("Redis connection failed: %s", e)
            self._client = None
            self._pool = None

    async def _load_scripts(self) -> None:
        """Load Lua scripts and store their SHAs for evalsha calls."""
        if not self._client:
            return
        try:
            self._create_session_sha = await self._client.script_load(CREATE_SESSION_SCRIPT)
            logger.info("Redis Lua scripts loaded")
        except RedisError as e:
            logger.warning("Failed to load Lua scripts: %s", e)

    async def close(self) -> None:
        """Close connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self._pool = None
            logger.info("Redis connection closed")

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._client is not None

    @property
    def create_session_sha(self) -> str | None:
        """Get SHA for the session creation script."""
        return self._create_session_sha

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        if not self._client:
            return False
        try:
            return await self._client.ping()
        except RedisError:
            return False

    async def get(self, key: str) -> bytes | None:
        """Get value, returns None if Redis unavailable."""
        if not self._client:
            return None
        try:
            return await self._client.get(key)
        except RedisError as e:
            logger.warning("Redis GET failed: %s", e)
            return None

    async def setex(self, key: str, seconds: int, value: str | bytes) -> bool:
        """Set value with expiry, returns False if Redis unavailable."""
        if not self._client:
            return False
        try:
            await self._client.setex(key, seconds, value)
            return True
        except RedisError as e:
            logger.warning("Redis SETEX failed: %s", e)
            return False

    async def delete(self, *keys: str) -> bool:
        """Delete key(s), returns False if Redis unavailable."""
        if not self._client:
            return False
        if not keys:
            return True
        try:
            await self._client.delete(*keys)
            return True
        except RedisError as e:
            logger.warning("Redis DELETE failed: %s", e)
            return False

    async def exists(self, key: str) -> bool:
        """Check key existence, returns False if Redis unavailable."""
        if not self._client:
            return False
        try:
            return bool(await self._client.exists(key))
        except RedisError as e:
            logger.warning("Redis EXISTS failed: %s", e)
            return False

    async def zrange(self, key: str, start: int = 0, end: int = -1) -> list[bytes]:
        """Get sorted-set members by rank, returns [] if Redis unavailable."""
        if not self._client:
            return []
        try:
            return await self._client.zrange(key, start, end)
        except RedisError as e:
            logger.warning("Redis ZRANGE failed: %s", e)
            return []

    async def zrem(self, key: str, *members: str | bytes) -> bool:
        """Remove sorted-set members, returns False if Redis unavailable."""
        if not self._client:
            return False
        if not members:
            return True
        try:
            await self._client.zrem(key, *members)
            return True
        except RedisError as e:
            logger.warning("Redis ZREM failed: %s", e)
            return False

    async def scan_keys(self, pattern: str) -> list[str]:
        """Collect keys matching a pattern, returns [] if Redis unavailable."""
        if not self._client:
            return []
        try:
            return [
                key.decode() if isinstance(key, bytes) else key
                async for key in self._client.scan_iter(match=pattern)
            ]
        except RedisError as e:
            logger.warning("Redis SCAN failed: %s", e)
            return []

    async def evalsha(self, sha: str, numkeys: int, *args: Any) -> Any:
        """Execute Lua script by SHA, returns None if Redis unavailable."""
        if not self._client:
            return None
        try:
            return await self._client.evalsha(sha, numkeys, *args)
        except RedisError as e:
            logger.warning("Redis EVALSHA failed: %s", e)
            return None

    async def flushdb(self) -> bool:
        """Flush current database (for testing). Returns False if unavailable."""
        if not self._client:
            return False
        try:
            await self._client.flushdb()
            return True
        except RedisError as e:
            logger.warning("Redis FLUSHDB failed: %s", e)
            return False


# Global Redis client state using a container to avoid global statement
class _RedisState:
    """Container for global Redis client state."""

    client: RedisClient | None = None


_state = _RedisState()


def get_redis_client() -> RedisClient | None:
    """Get the global Redis client instance."""
    return _state.client


def set_redis_client(client: RedisClient | None) -> None:
    """Set the global Redis client instance."""
    _state.client = client
