from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase

# Stable constraint names so PostgreSQL and SQLite schemas line up.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(AsyncAttrs, DeclarativeBase):
    """Declarative base for the durable store tables.

    Inherits from AsyncAttrs so rows can be used with the SQLAlchemy 2.0
    asyncio extension.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
