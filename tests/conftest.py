"""Pytest fixtures for ledger storage and pipeline tests.

Database-backed tests run against a throwaway SQLite file by default.
Setting ``ALETHEIA_TEST_DB=pglite`` runs them against py-pglite Postgres
instead.

Examples
--------
Run database-backed tests with py-pglite:

>>> ALETHEIA_TEST_DB=pglite pytest -k storage
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import typing as typ

import pytest
import pytest_asyncio
import sqlalchemy as sa
import sqlalchemy.exc as sa_exc

from aletheia.chat.storage import apply_migrations

if typ.TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

try:
    from py_pglite import PGliteConfig, PGliteManager

    _PGLITE_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    _PGLITE_AVAILABLE = False


def _should_use_pglite() -> bool:
    """Return True when tests should run against py-pglite.

    Requesting pglite without the package installed fails fast instead of
    silently falling back to SQLite.
    """
    target = os.getenv("ALETHEIA_TEST_DB", "sqlite").lower()
    if target != "pglite":
        return False
    if not _PGLITE_AVAILABLE:
        msg = (
            "Database-backed tests requested ALETHEIA_TEST_DB='pglite', but "
            "py-pglite is not installed. Install the 'pglite' extra or unset "
            "ALETHEIA_TEST_DB."
        )
        raise RuntimeError(msg)
    return True


async def _await_first_connection(
    engine: AsyncEngine, *, attempts: int = 30, pause: float = 0.1
) -> None:
    """Block until ``engine`` answers a trivial query.

    py-pglite reports itself started slightly before the socket accepts
    connections.
    """
    last_error: sa_exc.OperationalError | None = None
    for _ in range(attempts):
        try:
            async with engine.connect() as probe:
                await probe.scalar(sa.text("SELECT 1"))
        except sa_exc.OperationalError as exc:
            last_error = exc
            await asyncio.sleep(pause)
        else:
            return
    assert last_error is not None
    raise last_error


@contextlib.asynccontextmanager
async def _pglite_engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Run an embedded Postgres for the duration of one test."""
    from sqlalchemy.ext.asyncio import create_async_engine

    config = PGliteConfig(work_dir=tmp_path / "pglite")
    with PGliteManager(config):
        engine = create_async_engine(
            config.get_connection_string(), pool_pre_ping=True
        )
        try:
            await _await_first_connection(engine)
            yield engine
        finally:
            await engine.dispose()


@contextlib.asynccontextmanager
async def _sqlite_engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Yield an async engine bound to a SQLite file under ``tmp_path``."""
    from sqlalchemy.ext.asyncio import create_async_engine

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def database_engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Yield an empty async engine for the selected test database."""
    factory = _pglite_engine if _should_use_pglite() else _sqlite_engine
    async with factory(tmp_path) as engine:
        yield engine


@pytest_asyncio.fixture
async def migrated_engine(
    database_engine: AsyncEngine,
) -> typ.AsyncIterator[AsyncEngine]:
    """Yield an engine with all migrations applied."""
    await apply_migrations(database_engine)
    yield database_engine


@pytest.fixture
def session_factory(
    migrated_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Return an async session factory bound to the migrated engine."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    return async_sessionmaker(
        migrated_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def _function_scoped_runner() -> typ.Iterator[asyncio.Runner]:
    """Give synchronous BDD steps an event loop of their own."""
    with asyncio.Runner() as runner:
        yield runner
