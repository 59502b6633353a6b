"""Bucket replenishment arithmetic.

Both algorithms are pure: they take the persisted state and the current time
and return the state as of now. Stores own persistence and atomicity.
"""

import math
from abc import ABC, abstractmethod
from datetime import datetime

from shieldgate.app.core.utils import ms_to_datetime
from shieldgate.app.exceptions import ConfigurationError
from shieldgate.app.stores.models import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_REFILL_RATE,
    BucketOptions,
    BucketState,
)


class BucketAlgorithm(ABC):
    """Abstract base class for bucket disciplines."""

    name: str = "bucket"

    def __init__(self, capacity: int = DEFAULT_MAX_TOKENS):
        if capacity < 0:
            raise ConfigurationError(f"capacity must be >= 0, got {capacity}")
        self.capacity = capacity

    @classmethod
    @abstractmethod
    def from_options(cls, options: BucketOptions) -> "BucketAlgorithm":
        """Build the algorithm from store options, filling in defaults."""

    @property
    @abstractmethod
    def full_refill_ms(self) -> float:
        """Milliseconds needed to go from empty to full."""

    @abstractmethod
    def replenish(self, remaining: float, elapsed_ms: int) -> float:
        """Return ``remaining`` after ``elapsed_ms`` of refill, capped at capacity."""

    def new_state(self, now: int) -> BucketState:
        return BucketState(remaining=self.capacity, last_updated=now)

    def refill(self, state: BucketState, now: int) -> BucketState:
        """Apply replenishment since ``state.last_updated``.

        A clock that moved backwards counts as zero elapsed time and leaves
        ``last_updated`` where it was.
        """
        elapsed = max(now - state.last_updated, 0)
        remaining = self.replenish(state.remaining, elapsed)
        remaining = min(max(remaining, 0), self.capacity)
        return BucketState(remaining=remaining, last_updated=max(now, state.last_updated))

    def consume(self, state: BucketState) -> tuple[BucketState, bool]:
        """Take one unit if a whole unit is available."""
        if state.remaining >= 1:
            return BucketState(state.remaining - 1, state.last_updated), True
        return state, False

    def restore(self, state: BucketState) -> BucketState:
        return BucketState(min(state.remaining + 1, self.capacity), state.last_updated)

    def reset_time(self, last_updated: int) -> datetime:
        return ms_to_datetime(last_updated + self.full_refill_ms)


class TokenBucketAlgorithm(BucketAlgorithm):
    """Discrete refill: whole tokens granted in proportion to elapsed seconds.

    Sub-second remainders are dropped (``floor``), so frequent callers never
    earn fractional tokens.
    """

    name = "token_bucket"

    def __init__(self, capacity: int = DEFAULT_MAX_TOKENS, refill_rate: float = DEFAULT_REFILL_RATE):
        super().__init__(capacity)
        if refill_rate <= 0:
            raise ConfigurationError(f"refill_rate must be > 0, got {refill_rate}")
        self.tokens_per_interval = refill_rate
        self.refill_interval_ms = 1000 / refill_rate

    @classmethod
    def from_options(cls, options: BucketOptions) -> "TokenBucketAlgorithm":
        capacity = options.max if isinstance(options.max, int) else DEFAULT_MAX_TOKENS
        refill_rate = options.refill_rate if options.refill_rate is not None else DEFAULT_REFILL_RATE
        return cls(capacity=capacity, refill_rate=refill_rate)

    @property
    def full_refill_ms(self) -> float:
        return self.capacity * self.refill_interval_ms

    def replenish(self, remaining: float, elapsed_ms: int) -> float:
        tokens_to_add = math.floor((elapsed_ms / 1000) * self.tokens_per_interval)
        return min(int(remaining) + tokens_to_add, self.capacity)


class LeakyBucketAlgorithm(BucketAlgorithm):
    """Continuous recovery at ``capacity / window_ms`` units per millisecond."""

    name = "leaky_bucket"

    def __init__(self, capacity: int = DEFAULT_MAX_TOKENS, window_ms: float | None = None):
        super().__init__(capacity)
        if window_ms is None:
            window_ms = capacity * 1000 / DEFAULT_REFILL_RATE
        if window_ms <= 0:
            raise ConfigurationError(f"window_ms must be > 0, got {window_ms}")
        self.window_ms = window_ms
        self.leak_rate = capacity / window_ms

    @classmethod
    def from_options(cls, options: BucketOptions) -> "LeakyBucketAlgorithm":
        capacity = options.max if isinstance(options.max, int) else DEFAULT_MAX_TOKENS
        window_ms = options.window_ms
        if window_ms is None and options.refill_rate is not None:
            if options.refill_rate <= 0:
                raise ConfigurationError(f"refill_rate must be > 0, got {options.refill_rate}")
            window_ms = capacity * 1000 / options.refill_rate
        return cls(capacity=capacity, window_ms=window_ms)

    @property
    def full_refill_ms(self) -> float:
        return self.window_ms

    def replenish(self, remaining: float, elapsed_ms: int) -> float:
        leaked = elapsed_ms * self.leak_rate
        return min(remaining + leaked, self.capacity)


ALGORITHMS: dict[str, type[BucketAlgorithm]] = {
    TokenBucketAlgorithm.name: TokenBucketAlgorithm,
    LeakyBucketAlgorithm.name: LeakyBucketAlgorithm,
}
