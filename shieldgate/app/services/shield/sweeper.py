"""Periodic removal of expired suspicion records."""

import asyncio
from typing import Optional

from shieldgate.app.core.logging import get_logger
from shieldgate.app.services.shield.stores import SuspicionStore

logger = get_logger(__name__)


class SuspicionSweeper:
    """Background task that calls ``flush_expired`` on a fixed interval.

    A sweep racing a concurrent ``increment`` on the same key is harmless:
    the increment either sees the old, expired record and restarts the
    window, or sees nothing and starts a new one.
    """

    def __init__(self, store: SuspicionStore, interval_seconds: float = 60.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._store = store
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Sweep now and return the number of deleted records."""
        deleted = await self._store.flush_expired()
        if deleted:
            logger.info(f"Swept {deleted} expired suspicion records")
        return deleted

    async def start(self) -> None:
        """Start the periodic sweep task."""
        if self._task is not None:
            return
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Started suspicion sweep task")

    async def stop(self) -> None:
        """Stop the periodic sweep task."""
        if self._task is None:
            return
        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Stopped suspicion sweep task")

    async def _sweep_loop(self) -> None:
        """Background loop; a failed sweep is logged and retried next interval."""
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self._interval,
                )
            except asyncio.TimeoutError:
                pass
            if self._shutdown_event.is_set():
                break
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error during suspicion sweep: {e}")
