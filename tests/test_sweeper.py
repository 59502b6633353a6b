"""Tests for the suspicion sweeper background task."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from shieldgate.app.services.shield import InMemorySuspicionStore, SuspicionSweeper


@pytest.fixture
def mock_store():
    store = MagicMock()
    store.flush_expired = AsyncMock(return_value=0)
    return store


class TestSuspicionSweeper:
    """Tests for SuspicionSweeper."""

    def test_rejects_non_positive_interval(self, mock_store):
        with pytest.raises(ValueError):
            SuspicionSweeper(mock_store, interval_seconds=0)

    @pytest.mark.asyncio
    async def test_run_once_flushes_expired(self, clock):
        store = InMemorySuspicionStore(clock=clock)
        await store.increment("a", 60_000)
        await store.increment("b", 60_000)
        clock.return_value += 60

        sweeper = SuspicionSweeper(store)
        assert await sweeper.run_once() == 2
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_loop_sweeps_periodically(self, mock_store):
        sweeper = SuspicionSweeper(mock_store, interval_seconds=0.01)
        await sweeper.start()
        assert sweeper.running is True

        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert sweeper.running is False
        assert mock_store.flush_expired.await_count >= 2

    @pytest.mark.asyncio
    async def test_sweep_errors_do_not_stop_loop(self, mock_store):
        mock_store.flush_expired.side_effect = ConnectionError("down")
        sweeper = SuspicionSweeper(mock_store, interval_seconds=0.01)

        await sweeper.start()
        await asyncio.sleep(0.1)
        assert sweeper.running is True
        await sweeper.stop()

        assert mock_store.flush_expired.await_count >= 2

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task(self, mock_store):
        sweeper = SuspicionSweeper(mock_store, interval_seconds=10)
        await sweeper.start()
        task = sweeper._task
        await sweeper.start()
        assert sweeper._task is task
        await sweeper.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, mock_store):
        sweeper = SuspicionSweeper(mock_store)
        await sweeper.stop()
        assert sweeper.running is False

    @pytest.mark.asyncio
    async def test_stop_does_not_wait_for_interval(self, mock_store):
        sweeper = SuspicionSweeper(mock_store, interval_seconds=60)
        await sweeper.start()

        await asyncio.wait_for(sweeper.stop(), timeout=1.0)
        mock_store.flush_expired.assert_not_awaited()
