"""Data models for rate-limit stores."""

from dataclasses import dataclass
from datetime import datetime

DEFAULT_MAX_TOKENS = 10
DEFAULT_REFILL_RATE = 1.0  # Units per second


@dataclass(frozen=True)
class BucketOptions:
    """Options accepted by ``BucketStore.init``.

    Attributes:
        max: Bucket capacity. Defaults to 10 when omitted.
        refill_rate: Units restored per second. Defaults to 1.
        window_ms: Time for an empty bucket to become full again. When
            given, it takes precedence over ``refill_rate`` for the leaky
            bucket; the token bucket only uses ``refill_rate``.
    """
    max: int | None = None
    refill_rate: float | None = None
    window_ms: int | None = None


@dataclass
class BucketState:
    """Per-key bucket record.

    Attributes:
        remaining: Units currently available, 0 <= remaining <= capacity.
        last_updated: Epoch milliseconds of the last persisted refill.
    """
    remaining: float
    last_updated: int


@dataclass(frozen=True)
class ClientRateLimitInfo:
    """Result of a rate-limit store read or consume operation.

    Attributes:
        total_hits: Remaining capacity after the operation.
        reset_time: When the bucket will be full again.
        limit: Bucket capacity.
        allowed: Whether the operation consumed a unit. ``get`` reports
            whether a unit is currently available.
    """
    total_hits: float
    reset_time: datetime
    limit: int
    allowed: bool = True

    @property
    def remaining(self) -> int:
        """Whole units left, as reported in response headers."""
        return int(self.total_hits)

    def retry_after_seconds(self, now: datetime) -> int:
        """Seconds until the bucket is full, never negative."""
        return max(0, int((self.reset_time - now).total_seconds() + 0.999))
