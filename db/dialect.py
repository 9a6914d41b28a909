"""Dialect-specific INSERT constructs for ON CONFLICT upserts."""
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def upsert_insert(session: AsyncSession, model):
    """Return an INSERT for `model` that supports on_conflict_do_update/_nothing.

    PostgreSQL in production, SQLite for local runs and tests. Both render
    INSERT ... ON CONFLICT, which is atomic with respect to the unique key.
    """
    if session.bind.dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
