"""Alembic environment for the ledger schema.

Tests and the drift check hand over a live connection through
``config.attributes["connection"]``; the command line falls back to
``DATABASE_URL`` or ``sqlalchemy.url``.
"""

from __future__ import annotations

import asyncio
import os
import typing as typ
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import AsyncConnection, async_engine_from_config

from alembic import context
from aletheia.chat.storage.models import Base

config = context.config

if config.config_file_name and "connection" not in config.attributes:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Connection


def _database_url() -> str:
    """Return the target URL, preferring ``DATABASE_URL``."""
    db_url = os.environ.get("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not db_url:
        msg = "DATABASE_URL is not set and sqlalchemy.url is empty."
        raise RuntimeError(msg)
    config.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    return db_url


def run_migrations_offline() -> None:
    """Emit migration SQL without a database connection."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection: Connection) -> None:
    """Run migrations on a synchronous connection.

    SQLite cannot alter tables in place, so batch mode is enabled there.
    """
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def _run_with_engine() -> None:
    _database_url()
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_with_connection)
    finally:
        await engine.dispose()


def run_migrations_online() -> None:
    """Run migrations against a supplied connection or a fresh engine."""
    supplied = config.attributes.get("connection")
    if supplied is None:
        asyncio.run(_run_with_engine())
    elif isinstance(supplied, AsyncConnection):
        asyncio.run(supplied.run_sync(_run_with_connection))
    else:
        _run_with_connection(supplied)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
