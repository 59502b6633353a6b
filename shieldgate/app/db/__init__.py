"""Database package for ShieldGate.

This package provides:
- ORM rows for the durable token-bucket and suspicion stores
- Async engine and session management
- Dialect helpers for upserts
"""

from shieldgate.app.db.base import Base
from shieldgate.app.db.models import SuspicionScoreRow, TokenBucketRow
from shieldgate.app.db.async_session import (
    close_async_engine,
    create_engine_from_settings,
    create_engine_from_url,
    get_async_session_maker,
    init_async_db,
)
from shieldgate.app.db.dialects import upsert_factory

__all__ = [
    "Base",
    "SuspicionScoreRow",
    "TokenBucketRow",
    "close_async_engine",
    "create_engine_from_settings",
    "create_engine_from_url",
    "get_async_session_maker",
    "init_async_db",
    "upsert_factory",
]
