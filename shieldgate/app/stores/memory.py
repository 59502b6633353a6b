"""In-process bucket stores.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Each read-compute-write runs under an ``asyncio.Lock`` without awaiting
  anything in between, so tasks sharing a key cannot lose updates.
"""

import asyncio
import time

from shieldgate.app.core.logging import get_logger
from shieldgate.app.core.utils import Clock
from shieldgate.app.stores.base import BucketStore, LeakyBucketMixin
from shieldgate.app.stores.models import BucketOptions, BucketState, ClientRateLimitInfo

logger = get_logger(__name__)


class MemoryBucketStore(BucketStore):
    """Bucket store holding every client in a dict owned by the instance.

    Tests and applications create independent stores simply by
    instantiating them; there is no module-level state.
    """

    local_keys = True

    def __init__(self, options: BucketOptions | None = None, clock: Clock = time.time):
        super().__init__(options, clock)
        self._clients: dict[str, BucketState] = {}
        self._lock = asyncio.Lock()

    async def init(self, options: BucketOptions) -> None:
        await super().init(options)
        logger.debug(
            f"Initialized {type(self).__name__} with capacity={self.algorithm.capacity}, "
            f"full_refill_ms={self.algorithm.full_refill_ms}"
        )

    async def get(self, key: str) -> ClientRateLimitInfo | None:
        state = self._clients.get(key)
        if state is None:
            return None
        snapshot = self.algorithm.refill(state, self._now())
        return self._info(snapshot, allowed=snapshot.remaining >= 1)

    async def increment(self, key: str) -> ClientRateLimitInfo:
        async with self._lock:
            now = self._now()
            state = self._clients.get(key)
            if state is None:
                state = self.algorithm.new_state(now)
            state = self.algorithm.refill(state, now)
            state, consumed = self.algorithm.consume(state)
            self._clients[key] = state
        return self._info(state, allowed=consumed)

    async def decrement(self, key: str) -> None:
        async with self._lock:
            state = self._clients.get(key)
            if state is not None:
                self._clients[key] = self.algorithm.restore(state)

    async def reset_key(self, key: str) -> None:
        async with self._lock:
            self._clients[key] = self.algorithm.new_state(self._now())

    async def reset_all(self) -> None:
        async with self._lock:
            self._clients.clear()

    def __len__(self) -> int:
        return len(self._clients)


class MemoryTokenBucketStore(MemoryBucketStore):
    """In-memory token bucket (discrete, floored refill)."""


class MemoryLeakyBucketStore(LeakyBucketMixin, MemoryBucketStore):
    """In-memory leaky bucket (continuous, real-valued recovery)."""
