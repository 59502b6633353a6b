"""Tests for the in-memory and SQL suspicion stores."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from shieldgate.app.exceptions import ConfigurationError, StoreContentionError
from shieldgate.app.services.shield import (
    InMemorySuspicionStore,
    SqlSuspicionStore,
    SuspicionRecord,
    advance_record,
)

BLOCK_MS = 60_000


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, clock, sqlite_engine):
    """Each behavioural test runs against both backends."""
    if request.param == "memory":
        store = InMemorySuspicionStore(threshold=5, ttl_ms=60_000, clock=clock)
    else:
        store = SqlSuspicionStore(sqlite_engine, threshold=5, ttl_ms=60_000, clock=clock)
    await store.init()
    return store


class TestAdvanceRecord:
    """Tests for the pure score transition."""

    def test_absent_record_starts_window(self):
        record = advance_record(None, now=1_000, threshold=5, ttl_ms=500, block_duration_ms=9_000)
        assert record == SuspicionRecord(score=1, expiry=1_500, is_blocked=False)

    def test_expired_record_restarts_window(self):
        old = SuspicionRecord(score=4, expiry=1_000, is_blocked=False)
        record = advance_record(old, now=1_000, threshold=5, ttl_ms=500, block_duration_ms=9_000)
        assert record.score == 1

    def test_reaching_threshold_blocks(self):
        old = SuspicionRecord(score=4, expiry=2_000)
        record = advance_record(old, now=1_000, threshold=5, ttl_ms=500, block_duration_ms=9_000)
        assert record == SuspicionRecord(score=5, expiry=10_000, is_blocked=True)

    def test_expiry_never_moves_backwards(self):
        old = SuspicionRecord(score=4, expiry=60_000)
        record = advance_record(old, now=1_000, threshold=5, ttl_ms=60_000, block_duration_ms=1_000)
        assert record.is_blocked is True
        assert record.expiry == 60_000


class TestSuspicionStores:
    """Behaviour shared by every suspicion store."""

    @pytest.mark.asyncio
    async def test_scores_escalate_to_block(self, store):
        scores = [await store.increment("client", BLOCK_MS) for _ in range(5)]
        assert scores == [1, 2, 3, 4, 5]
        assert await store.is_blocked("client") is True

    @pytest.mark.asyncio
    async def test_below_threshold_is_not_blocked(self, store):
        for _ in range(4):
            await store.increment("client", BLOCK_MS)
        assert await store.is_blocked("client") is False

    @pytest.mark.asyncio
    async def test_unknown_key(self, store):
        assert await store.is_blocked("nobody") is False
        assert await store.get("nobody") is None

    @pytest.mark.asyncio
    async def test_expired_window_restarts_score(self, store, clock):
        await store.increment("client", BLOCK_MS)
        await store.increment("client", BLOCK_MS)

        clock.return_value += 60
        assert await store.increment("client", BLOCK_MS) == 1

    @pytest.mark.asyncio
    async def test_window_slides_while_active(self, store, clock):
        await store.increment("client", BLOCK_MS)
        clock.return_value += 30
        await store.increment("client", BLOCK_MS)
        clock.return_value += 45

        assert await store.increment("client", BLOCK_MS) == 3

    @pytest.mark.asyncio
    async def test_block_lapses_after_duration(self, store, clock):
        for _ in range(5):
            await store.increment("client", BLOCK_MS)

        start = clock.return_value
        clock.return_value = start + 59
        assert await store.is_blocked("client") is True

        clock.return_value = start + 60
        assert await store.is_blocked("client") is False
        # Record lingers until swept, but a new hit starts over.
        assert (await store.get("client")).is_blocked is True
        assert await store.increment("client", BLOCK_MS) == 1
        assert await store.is_blocked("client") is False

    @pytest.mark.asyncio
    async def test_flush_removes_only_expired(self, store, clock):
        await store.increment("early", BLOCK_MS)
        clock.return_value += 30
        await store.increment("late", BLOCK_MS)

        clock.return_value += 30
        assert await store.flush_expired() == 1
        assert await store.get("early") is None
        assert await store.get("late") is not None

    @pytest.mark.asyncio
    async def test_flush_with_nothing_expired(self, store):
        await store.increment("client", BLOCK_MS)
        assert await store.flush_expired() == 0

    @pytest.mark.asyncio
    async def test_get_reports_record(self, store, clock):
        now_ms = int(clock.return_value * 1000)
        await store.increment("client", BLOCK_MS)

        record = await store.get("client")
        assert record == SuspicionRecord(score=1, expiry=now_ms + 60_000, is_blocked=False)

    @pytest.mark.asyncio
    async def test_reset_key_and_reset_all(self, store):
        await store.increment("a", BLOCK_MS)
        await store.increment("b", BLOCK_MS)

        await store.reset_key("a")
        assert await store.get("a") is None
        assert await store.get("b") is not None

        await store.reset_all()
        assert await store.get("b") is None

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_counted(self, store):
        store.threshold = 100
        await asyncio.gather(*(store.increment("client", BLOCK_MS) for _ in range(20)))
        assert (await store.get("client")).score == 20


class TestInMemorySuspicionStore:
    """Tests specific to the in-process store."""

    def test_rejects_invalid_threshold(self):
        with pytest.raises(ConfigurationError):
            InMemorySuspicionStore(threshold=0)

    def test_rejects_invalid_ttl(self):
        with pytest.raises(ConfigurationError):
            InMemorySuspicionStore(ttl_ms=0)

    @pytest.mark.asyncio
    async def test_len_tracks_records(self, clock):
        store = InMemorySuspicionStore(clock=clock)
        await store.increment("a", BLOCK_MS)
        await store.increment("b", BLOCK_MS)
        assert len(store) == 2


class TestSqlSuspicionStore:
    """Tests specific to the compare-and-swap SQL store."""

    @pytest.mark.asyncio
    async def test_contention_exhausts_retries(self, sqlite_engine, clock):
        store = SqlSuspicionStore(sqlite_engine, max_retries=3, clock=clock)
        await store.init()

        with patch.object(store, "_try_increment", AsyncMock(return_value=None)) as attempt:
            with pytest.raises(StoreContentionError) as exc_info:
                await store.increment("client", BLOCK_MS)

        assert attempt.await_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.key == "client"
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_conflict_then_success(self, sqlite_engine, clock):
        store = SqlSuspicionStore(sqlite_engine, clock=clock)
        await store.init()

        with patch.object(store, "_try_increment", AsyncMock(side_effect=[None, 4])):
            assert await store.increment("client", BLOCK_MS) == 4

    @pytest.mark.asyncio
    async def test_two_instances_share_scores(self, sqlite_engine, clock):
        """Two stores on one table: every increment lands."""
        first = SqlSuspicionStore(sqlite_engine, threshold=10, clock=clock)
        second = SqlSuspicionStore(sqlite_engine, threshold=10, clock=clock)
        await first.init()

        await asyncio.gather(
            *(first.increment("client", BLOCK_MS) for _ in range(5)),
            *(second.increment("client", BLOCK_MS) for _ in range(5)),
        )
        assert (await first.get("client")).score == 10

    def test_rejects_invalid_retry_budget(self, sqlite_engine):
        with pytest.raises(ConfigurationError):
            SqlSuspicionStore(sqlite_engine, max_retries=0)

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, sqlite_engine):
        store = SqlSuspicionStore(sqlite_engine)
        await store.shutdown()
        await store.shutdown()
