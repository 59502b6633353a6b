"""Shared fixtures for ShieldGate tests."""

from unittest.mock import Mock

import pytest
import pytest_asyncio

from shieldgate.app.db.async_session import close_async_engine, create_engine_from_url

T0 = 1_700_000_000.0  # Fixed epoch seconds used as "now" by fake clocks


@pytest.fixture
def clock():
    """Controllable time source; set ``clock.return_value`` to move time."""
    return Mock(return_value=T0)


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path):
    """File-backed SQLite engine so pooled connections share one database."""
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'shieldgate.db'}")
    yield engine
    await close_async_engine(engine)
