"""Suspicion store shared through Redis.

All state transitions run as Lua scripts (see ``redis_lua``); Python only
marshals arguments and results. Redis client errors propagate to the caller
unchanged.
"""

import time
from typing import Any, Optional

from shieldgate.app.core.logging import get_log_context, get_logger
from shieldgate.app.core.utils import Clock
from shieldgate.app.services.shield.models import (
    DEFAULT_SCORE_TTL_MS,
    DEFAULT_SUSPICION_THRESHOLD,
    SuspicionRecord,
)
from shieldgate.app.services.shield.redis_lua import (
    FLUSH_EXPIRED_SCRIPT,
    INCREMENT_SCRIPT,
    IS_BLOCKED_SCRIPT,
)
from shieldgate.app.services.shield.stores import SuspicionStore

logger = get_logger(__name__)


def _decode(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


class RedisSuspicionStore(SuspicionStore):
    """Suspicion store using Redis hashes and server-side scripts.

    Redis key format:
    - {prefix}{client_key} - hash with score, expiry, isBlocked
    """

    local_keys = False

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: Optional[str] = None,
        threshold: int = DEFAULT_SUSPICION_THRESHOLD,
        ttl_ms: int = DEFAULT_SCORE_TTL_MS,
        key_prefix: str = "shield:",
        clock: Clock = time.time,
    ):
        """Initialize the Redis suspicion store.

        Args:
            redis_client: Existing ``redis.asyncio`` client. Created lazily
                from ``redis_url`` when omitted.
            redis_url: Connection URL used when no client is given.
            threshold: Score at which a client becomes blocked.
            ttl_ms: Sliding window for unblocked records.
            key_prefix: Namespace for record keys; the sweep only scans it.
            clock: Local time source, used only by ``get`` callers; the
                scripts use Redis server time.
        """
        super().__init__(threshold, ttl_ms, clock)
        if redis_client is None and redis_url is None:
            raise ValueError("Either redis_client or redis_url is required")
        self._redis = redis_client
        self._redis_url = redis_url
        self._key_prefix = key_prefix
        self._closed = False

    def _get_redis(self) -> Any:
        """Get or create the Redis client."""
        if self._redis is None:
            import redis.asyncio as aioredis
            self._redis = aioredis.from_url(self._redis_url)
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def is_blocked(self, key: str) -> bool:
        result = await self._get_redis().eval(IS_BLOCKED_SCRIPT, 1, self._make_key(key))
        return bool(int(result))

    async def increment(self, key: str, block_duration_ms: int) -> int:
        try:
            result = await self._get_redis().eval(
                INCREMENT_SCRIPT,
                1,  # Number of keys
                self._make_key(key),  # KEYS[1]
                self.threshold,  # ARGV[1]
                block_duration_ms,  # ARGV[2]
                self.ttl_ms,  # ARGV[3]
            )
        except Exception as e:
            logger.error(
                f"Suspicion increment script failed: {e}",
                extra=get_log_context(client_key=key, backend="redis"),
            )
            raise
        return int(result)

    async def get(self, key: str) -> Optional[SuspicionRecord]:
        data = await self._get_redis().hgetall(self._make_key(key))
        if not data:
            return None
        fields = {_decode(k): _decode(v) for k, v in data.items()}
        return SuspicionRecord(
            score=int(fields.get("score") or 0),
            expiry=int(fields.get("expiry") or 0),
            is_blocked=fields.get("isBlocked") == "true",
        )

    async def flush_expired(self) -> int:
        deleted = int(
            await self._get_redis().eval(FLUSH_EXPIRED_SCRIPT, 0, f"{self._key_prefix}*")
        )
        if deleted:
            logger.debug(f"Flushed {deleted} expired suspicion records from Redis")
        return deleted

    async def reset_key(self, key: str) -> None:
        await self._get_redis().delete(self._make_key(key))

    async def reset_all(self) -> None:
        redis = self._get_redis()
        keys = [k async for k in redis.scan_iter(match=f"{self._key_prefix}*")]
        if keys:
            await redis.delete(*keys)

    async def shutdown(self) -> None:
        if self._closed or self._redis is None:
            self._closed = True
            return
        self._closed = True
        try:
            await self._redis.aclose()
        except Exception as e:
            logger.warning(f"Error closing Redis connection: {e}")
