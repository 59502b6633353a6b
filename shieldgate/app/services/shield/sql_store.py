"""Suspicion store on a relational table, updated by compare-and-swap.

Databases offer no single-round-trip scripts, so the transition is emulated:
an in-process lock per key keeps local tasks from racing each other, and a
``version`` column guards against other processes. A write only lands if
the version it read is still current; otherwise the read-compute-write is
retried a bounded number of times before ``StoreContentionError``.
"""

import asyncio
import time
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from shieldgate.app.core.logging import get_log_context, get_logger
from shieldgate.app.core.utils import Clock
from shieldgate.app.db.async_session import (
    close_async_engine,
    get_async_session_maker,
    init_async_db,
)
from shieldgate.app.db.dialects import upsert_factory
from shieldgate.app.db.models import SuspicionScoreRow
from shieldgate.app.exceptions import ConfigurationError, StoreContentionError
from shieldgate.app.services.shield.models import (
    DEFAULT_SCORE_TTL_MS,
    DEFAULT_SUSPICION_THRESHOLD,
    SuspicionRecord,
)
from shieldgate.app.services.shield.stores import SuspicionStore, advance_record

logger = get_logger(__name__)

DEFAULT_MAX_RETRIES = 3


def _to_record(row: SuspicionScoreRow) -> SuspicionRecord:
    return SuspicionRecord(score=row.score, expiry=row.expiry, is_blocked=row.is_blocked)


class SqlSuspicionStore(SuspicionStore):
    """Suspicion scores in the ``suspicion_scores`` table."""

    local_keys = False

    def __init__(
        self,
        engine: AsyncEngine,
        threshold: int = DEFAULT_SUSPICION_THRESHOLD,
        ttl_ms: int = DEFAULT_SCORE_TTL_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        clock: Clock = time.time,
    ):
        super().__init__(threshold, ttl_ms, clock)
        if max_retries < 1:
            raise ConfigurationError(f"max_retries must be >= 1, got {max_retries}")
        self.max_retries = max_retries
        self._engine = engine
        self._session_maker = get_async_session_maker(engine)
        self._insert = upsert_factory(engine)
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._closed = False

    async def init(self) -> None:
        await init_async_db(self._engine, tables=[SuspicionScoreRow.__table__])

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = self._key_locks[key] = asyncio.Lock()
        return lock

    async def _try_increment(self, key: str, block_duration_ms: int) -> Optional[int]:
        """One compare-and-swap attempt; None when another writer won."""
        now = self._now()
        async with self._session_maker() as session, session.begin():
            result = await session.execute(
                select(SuspicionScoreRow).where(SuspicionScoreRow.key == key)
            )
            row = result.scalar_one_or_none()
            current = _to_record(row) if row is not None else None
            new = advance_record(current, now, self.threshold, self.ttl_ms, block_duration_ms)

            if row is None:
                inserted = await session.execute(
                    self._insert(SuspicionScoreRow)
                    .values(
                        key=key,
                        score=new.score,
                        expiry=new.expiry,
                        is_blocked=new.is_blocked,
                        version=1,
                    )
                    .on_conflict_do_nothing(index_elements=[SuspicionScoreRow.key])
                )
                return new.score if inserted.rowcount == 1 else None

            swapped = await session.execute(
                update(SuspicionScoreRow)
                .where(
                    SuspicionScoreRow.key == key,
                    SuspicionScoreRow.version == row.version,
                )
                .values(
                    score=new.score,
                    expiry=new.expiry,
                    is_blocked=new.is_blocked,
                    version=row.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            return new.score if swapped.rowcount == 1 else None

    async def increment(self, key: str, block_duration_ms: int) -> int:
        async with self._lock_for(key):
            for attempt in range(1, self.max_retries + 1):
                score = await self._try_increment(key, block_duration_ms)
                if score is not None:
                    return score
                logger.debug(
                    f"Suspicion CAS conflict (attempt {attempt}/{self.max_retries})",
                    extra=get_log_context(client_key=key, backend="database"),
                )
        logger.warning(
            "Suspicion CAS retries exhausted",
            extra=get_log_context(client_key=key, backend="database"),
        )
        raise StoreContentionError(key, self.max_retries)

    async def is_blocked(self, key: str) -> bool:
        record = await self.get(key)
        return record is not None and record.is_blocked and not record.is_expired(self._now())

    async def get(self, key: str) -> Optional[SuspicionRecord]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(SuspicionScoreRow).where(SuspicionScoreRow.key == key)
            )
            row = result.scalar_one_or_none()
            return _to_record(row) if row is not None else None

    async def flush_expired(self) -> int:
        now = self._now()
        async with self._session_maker() as session, session.begin():
            result = await session.execute(
                delete(SuspicionScoreRow).where(SuspicionScoreRow.expiry <= now)
            )
        for key, lock in list(self._key_locks.items()):
            if not lock.locked():
                del self._key_locks[key]
        return result.rowcount or 0

    async def reset_key(self, key: str) -> None:
        async with self._session_maker() as session, session.begin():
            await session.execute(delete(SuspicionScoreRow).where(SuspicionScoreRow.key == key))

    async def reset_all(self) -> None:
        async with self._session_maker() as session, session.begin():
            await session.execute(delete(SuspicionScoreRow))
        self._key_locks.clear()

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        await close_async_engine(self._engine)
