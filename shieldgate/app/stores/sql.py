"""Durable token-bucket store on a relational table.

Every mutation runs in its own transaction:

1. make sure the row exists (``INSERT ... ON CONFLICT DO NOTHING``),
2. ``SELECT ... FOR UPDATE`` to take the row lock,
3. compute the new state and upsert it,
4. commit.

The lock is held only between steps 2 and 4. Any exception, including
task cancellation, rolls the transaction back before the connection goes
back to the pool, and is re-raised unchanged.
"""

import time

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from shieldgate.app.core.logging import get_log_context, get_logger
from shieldgate.app.core.utils import Clock
from shieldgate.app.db.async_session import (
    close_async_engine,
    get_async_session_maker,
    init_async_db,
)
from shieldgate.app.db.dialects import upsert_factory
from shieldgate.app.db.models import TokenBucketRow
from shieldgate.app.stores.base import BucketStore
from shieldgate.app.stores.models import BucketOptions, BucketState, ClientRateLimitInfo

logger = get_logger(__name__)


class SqlTokenBucketStore(BucketStore):
    """Token bucket persisted in the ``token_buckets`` table.

    State is shared by every process pointing at the same database, so
    ``local_keys`` is False. Concurrent increments on one key are serialized
    by the database; nothing here retries.
    """

    local_keys = False

    def __init__(
        self,
        engine: AsyncEngine,
        options: BucketOptions | None = None,
        clock: Clock = time.time,
    ):
        super().__init__(options, clock)
        self._engine = engine
        self._session_maker = get_async_session_maker(engine)
        self._insert = upsert_factory(engine)
        self._closed = False

    async def init(self, options: BucketOptions) -> None:
        await super().init(options)
        logger.debug(
            f"Initialized SqlTokenBucketStore with refill_interval_ms="
            f"{self.algorithm.refill_interval_ms}, capacity={self.algorithm.capacity}, "
            f"tokens_per_interval={self.algorithm.tokens_per_interval}"
        )
        try:
            await init_async_db(self._engine, tables=[TokenBucketRow.__table__])
        except Exception:
            logger.error("Error initializing the token bucket table", exc_info=True)
            raise
        logger.debug("Token bucket table verified or created successfully.")

    async def _lock_row(self, session: AsyncSession, key: str, now: int) -> TokenBucketRow:
        await session.execute(
            self._insert(TokenBucketRow)
            .values(key=key, tokens=self.algorithm.capacity, last_refill_time=now)
            .on_conflict_do_nothing(index_elements=[TokenBucketRow.key])
        )
        result = await session.execute(
            select(TokenBucketRow).where(TokenBucketRow.key == key).with_for_update()
        )
        return result.scalar_one()

    async def _write(self, session: AsyncSession, key: str, state: BucketState) -> None:
        tokens = int(state.remaining)
        stmt = self._insert(TokenBucketRow).values(
            key=key, tokens=tokens, last_refill_time=state.last_updated
        )
        await session.execute(
            stmt.on_conflict_do_update(
                index_elements=[TokenBucketRow.key],
                set_={"tokens": tokens, "last_refill_time": state.last_updated},
            )
        )

    async def increment(self, key: str) -> ClientRateLimitInfo:
        now = self._now()
        try:
            async with self._session_maker() as session, session.begin():
                row = await self._lock_row(session, key, now)
                state = BucketState(remaining=row.tokens, last_updated=row.last_refill_time)
                state = self.algorithm.refill(state, now)
                state, consumed = self.algorithm.consume(state)
                await self._write(session, key, state)
        except Exception:
            logger.error(
                "Token bucket increment failed, transaction rolled back",
                extra=get_log_context(client_key=key, backend="database"),
            )
            raise
        return self._info(state, allowed=consumed)

    async def get(self, key: str) -> ClientRateLimitInfo | None:
        async with self._session_maker() as session:
            result = await session.execute(
                select(TokenBucketRow.tokens, TokenBucketRow.last_refill_time).where(
                    TokenBucketRow.key == key
                )
            )
            row = result.one_or_none()
        if row is None:
            return None
        state = BucketState(remaining=row.tokens, last_updated=row.last_refill_time)
        snapshot = self.algorithm.refill(state, self._now())
        return self._info(snapshot, allowed=snapshot.remaining >= 1)

    async def decrement(self, key: str) -> None:
        async with self._session_maker() as session, session.begin():
            result = await session.execute(
                select(TokenBucketRow).where(TokenBucketRow.key == key).with_for_update()
            )
            row = result.scalar_one_or_none()
            if row is not None:
                row.tokens = min(row.tokens + 1, self.algorithm.capacity)

    async def reset_key(self, key: str) -> None:
        async with self._session_maker() as session, session.begin():
            await self._write(session, key, self.algorithm.new_state(self._now()))

    async def reset_all(self) -> None:
        async with self._session_maker() as session, session.begin():
            await session.execute(delete(TokenBucketRow))

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        await close_async_engine(self._engine)
