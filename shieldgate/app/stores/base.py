"""Rate-limit store interface.

Callers depend on this abstraction; the concrete backend (in-process or
durable SQL) is chosen at construction time and injected.
"""

import time
from abc import ABC, abstractmethod
from typing import ClassVar

from shieldgate.app.core.utils import Clock, now_ms
from shieldgate.app.stores.algorithms import (
    BucketAlgorithm,
    LeakyBucketAlgorithm,
    TokenBucketAlgorithm,
)
from shieldgate.app.stores.models import BucketOptions, BucketState, ClientRateLimitInfo


class BucketStore(ABC):
    """Keyed, atomically mutable bucket records with time-based refill.

    Subclasses pick the discipline through ``algorithm_class`` and may be
    reconfigured at any time through ``init``.
    """

    algorithm_class: ClassVar[type[BucketAlgorithm]] = TokenBucketAlgorithm

    # True when state lives inside this instance and is not shared across
    # processes.
    local_keys: ClassVar[bool] = True

    def __init__(self, options: BucketOptions | None = None, clock: Clock = time.time):
        self._clock = clock
        self.algorithm = self.algorithm_class.from_options(options or BucketOptions())

    @property
    def capacity(self) -> int:
        return self.algorithm.capacity

    def _now(self) -> int:
        return now_ms(self._clock)

    def _info(self, state: BucketState, allowed: bool) -> ClientRateLimitInfo:
        return ClientRateLimitInfo(
            total_hits=state.remaining,
            reset_time=self.algorithm.reset_time(state.last_updated),
            limit=self.algorithm.capacity,
            allowed=allowed,
        )

    async def init(self, options: BucketOptions) -> None:
        """Configure capacity and rate. Missing values take defaults."""
        self.algorithm = self.algorithm_class.from_options(options)

    @abstractmethod
    async def get(self, key: str) -> ClientRateLimitInfo | None:
        """Snapshot of a key with pending refill applied, or None if unknown."""

    @abstractmethod
    async def increment(self, key: str) -> ClientRateLimitInfo:
        """Refill, consume one unit if available, persist, and report."""

    @abstractmethod
    async def decrement(self, key: str) -> None:
        """Give back one unit, capped at capacity."""

    @abstractmethod
    async def reset_key(self, key: str) -> None:
        """Force a key back to full capacity."""

    @abstractmethod
    async def reset_all(self) -> None:
        """Remove every record."""

    async def shutdown(self) -> None:
        """Release held resources. Safe to call more than once."""
        return None


class LeakyBucketMixin:
    """Selects the continuous leaky-bucket discipline."""

    algorithm_class: ClassVar[type[BucketAlgorithm]] = LeakyBucketAlgorithm
