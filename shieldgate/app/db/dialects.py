"""Dialect-specific ``INSERT ... ON CONFLICT`` support."""

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine

from shieldgate.app.exceptions import ConfigurationError

_INSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def upsert_factory(engine: AsyncEngine) -> Any:
    """Return the ``insert`` construct supporting ``on_conflict_*`` for ``engine``.

    Raises:
        ConfigurationError: If the dialect has no ON CONFLICT support here.
    """
    dialect = engine.dialect.name
    try:
        return _INSERT_BY_DIALECT[dialect]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported database dialect for durable stores: {dialect}"
        ) from None
