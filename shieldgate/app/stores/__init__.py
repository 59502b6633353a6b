"""Rate-limit bucket stores.

This package provides a small abstraction layer so callers can start with an
in-process limiter and move to a shared SQL table without changing the HTTP
layer.
"""

from shieldgate.app.stores.algorithms import (
    ALGORITHMS,
    BucketAlgorithm,
    LeakyBucketAlgorithm,
    TokenBucketAlgorithm,
)
from shieldgate.app.stores.base import BucketStore
from shieldgate.app.stores.memory import (
    MemoryBucketStore,
    MemoryLeakyBucketStore,
    MemoryTokenBucketStore,
)
from shieldgate.app.stores.models import BucketOptions, BucketState, ClientRateLimitInfo
from shieldgate.app.stores.sql import SqlTokenBucketStore

__all__ = [
    "ALGORITHMS",
    "BucketAlgorithm",
    "BucketOptions",
    "BucketState",
    "BucketStore",
    "ClientRateLimitInfo",
    "LeakyBucketAlgorithm",
    "MemoryBucketStore",
    "MemoryLeakyBucketStore",
    "MemoryTokenBucketStore",
    "SqlTokenBucketStore",
    "TokenBucketAlgorithm",
]
