"""Suspicion score stores.

A store keeps one ``SuspicionRecord`` per client key and applies the score
transition atomically per key:

- absent or expired record: restart the window with ``score=1``;
- otherwise ``score += 1``; at or above the threshold the client is blocked
  and the expiry moves to ``now + block_duration_ms``, below it the window
  slides to ``now + ttl``.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import ClassVar, Optional

from shieldgate.app.core.logging import get_logger
from shieldgate.app.core.utils import Clock, now_ms
from shieldgate.app.exceptions import ConfigurationError
from shieldgate.app.services.shield.models import (
    DEFAULT_SCORE_TTL_MS,
    DEFAULT_SUSPICION_THRESHOLD,
    SuspicionRecord,
)

logger = get_logger(__name__)


def advance_record(
    record: Optional[SuspicionRecord],
    now: int,
    threshold: int,
    ttl_ms: int,
    block_duration_ms: int,
) -> SuspicionRecord:
    """Compute the record after one suspicious hit.

    Pure function shared by the in-process and SQL stores; the Redis store
    runs the same transition in Lua.
    """
    if record is None or record.is_expired(now):
        return SuspicionRecord(score=1, expiry=now + ttl_ms, is_blocked=False)

    score = record.score + 1
    if score >= threshold:
        return SuspicionRecord(
            score=score,
            expiry=max(record.expiry, now + block_duration_ms),
            is_blocked=True,
        )
    return SuspicionRecord(
        score=score,
        expiry=max(record.expiry, now + ttl_ms),
        is_blocked=record.is_blocked,
    )


class SuspicionStore(ABC):
    """Interface for suspicion score backends."""

    # True when state lives inside this instance only.
    local_keys: ClassVar[bool] = True

    def __init__(
        self,
        threshold: int = DEFAULT_SUSPICION_THRESHOLD,
        ttl_ms: int = DEFAULT_SCORE_TTL_MS,
        clock: Clock = time.time,
    ):
        if threshold < 1:
            raise ConfigurationError(f"threshold must be >= 1, got {threshold}")
        if ttl_ms < 1:
            raise ConfigurationError(f"ttl_ms must be >= 1, got {ttl_ms}")
        self.threshold = threshold
        self.ttl_ms = ttl_ms
        self._clock = clock

    def _now(self) -> int:
        return now_ms(self._clock)

    async def init(self) -> None:
        """Prepare the backend (create tables, load scripts). No-op by default."""
        return None

    @abstractmethod
    async def is_blocked(self, key: str) -> bool:
        """Whether ``key`` is currently blocked. A lapsed block reads as False."""

    @abstractmethod
    async def increment(self, key: str, block_duration_ms: int) -> int:
        """Record one suspicious hit and return the resulting score."""

    @abstractmethod
    async def get(self, key: str) -> Optional[SuspicionRecord]:
        """Current record for ``key``, expired or not, or None."""

    @abstractmethod
    async def flush_expired(self) -> int:
        """Delete every record with ``expiry <= now``; return how many."""

    @abstractmethod
    async def reset_key(self, key: str) -> None:
        """Forget ``key``."""

    @abstractmethod
    async def reset_all(self) -> None:
        """Forget every key."""

    async def shutdown(self) -> None:
        """Release held resources. Safe to call more than once."""
        return None


class InMemorySuspicionStore(SuspicionStore):
    """Suspicion store backed by a dict owned by the instance.

    This store is per-process only. The transition never awaits between
    reading and writing a record.
    """

    local_keys = True

    def __init__(
        self,
        threshold: int = DEFAULT_SUSPICION_THRESHOLD,
        ttl_ms: int = DEFAULT_SCORE_TTL_MS,
        clock: Clock = time.time,
    ):
        super().__init__(threshold, ttl_ms, clock)
        self._records: dict[str, SuspicionRecord] = {}
        self._lock = asyncio.Lock()

    async def is_blocked(self, key: str) -> bool:
        record = self._records.get(key)
        return record is not None and record.is_blocked and not record.is_expired(self._now())

    async def increment(self, key: str, block_duration_ms: int) -> int:
        async with self._lock:
            record = advance_record(
                self._records.get(key),
                self._now(),
                self.threshold,
                self.ttl_ms,
                block_duration_ms,
            )
            self._records[key] = record
        return record.score

    async def get(self, key: str) -> Optional[SuspicionRecord]:
        return self._records.get(key)

    async def flush_expired(self) -> int:
        async with self._lock:
            now = self._now()
            expired = [key for key, record in self._records.items() if record.expiry <= now]
            for key in expired:
                del self._records[key]
        if expired:
            logger.debug(f"Flushed {len(expired)} expired suspicion records")
        return len(expired)

    async def reset_key(self, key: str) -> None:
        async with self._lock:
            self._records.pop(key, None)

    async def reset_all(self) -> None:
        async with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
