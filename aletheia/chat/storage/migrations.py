"""Alembic wiring for the ledger schema.

The ``alembic/`` scripts live at the project root next to ``alembic.ini``.
Everything here hands Alembic a live connection through
``Config.attributes`` so migrations share the caller's engine and event
loop instead of opening their own.

Examples
--------
Migrate an engine and confirm the models match:

>>> await apply_migrations(engine)
>>> await current_revision(engine)
'20261018_000001'
>>> await detect_schema_drift(engine)
[]
"""

from __future__ import annotations

import pathlib
import typing as typ

from alembic.autogenerate import compare_metadata
from alembic.config import Config
from alembic.migration import MigrationContext

from alembic import command

from .models import Base

if typ.TYPE_CHECKING:
    import sqlalchemy as sa
    from sqlalchemy.engine import Connection
    from sqlalchemy.ext.asyncio import AsyncEngine

type SchemaDiff = tuple[object, ...]

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[3]
ALEMBIC_INI = PROJECT_ROOT / "alembic.ini"
SCRIPT_LOCATION = PROJECT_ROOT / "alembic"


def alembic_config(database_url: str) -> Config:
    """Return an Alembic config bound to the project scripts and ``database_url``.

    ConfigParser treats ``%`` as interpolation, so it is doubled before the
    URL is stored.
    """
    cfg = Config(str(ALEMBIC_INI))
    cfg.set_main_option("script_location", str(SCRIPT_LOCATION))
    cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return cfg


def _upgrade(connection: Connection, cfg: Config, revision: str) -> None:
    cfg.attributes["connection"] = connection
    command.upgrade(cfg, revision)


async def apply_migrations(engine: AsyncEngine, revision: str = "head") -> None:
    """Upgrade the database behind ``engine`` to ``revision``.

    Parameters
    ----------
    engine : AsyncEngine
        Engine whose database is migrated in one transaction.
    revision : str, optional
        Target revision; defaults to the newest one.
    """
    cfg = alembic_config(engine.url.render_as_string(hide_password=False))
    async with engine.begin() as connection:
        await connection.run_sync(_upgrade, cfg, revision)


def _revision_of(connection: Connection) -> str | None:
    return MigrationContext.configure(connection).get_current_revision()


async def current_revision(engine: AsyncEngine) -> str | None:
    """Return the revision stamped in the database, or ``None`` if unmigrated."""
    async with engine.connect() as connection:
        return await connection.run_sync(_revision_of)


def _compare_schema(connection: Connection, metadata: sa.MetaData) -> list[SchemaDiff]:
    ctx = MigrationContext.configure(connection)
    return typ.cast("list[SchemaDiff]", compare_metadata(ctx, metadata))


async def detect_schema_drift(engine: AsyncEngine) -> list[SchemaDiff]:
    """List differences between the migrated database and the ORM models.

    Parameters
    ----------
    engine : AsyncEngine
        Engine whose database already carries every migration.

    Returns
    -------
    list[SchemaDiff]
        Alembic autogenerate operations; empty when nothing drifted.
    """
    async with engine.connect() as connection:
        return await connection.run_sync(_compare_schema, Base.metadata)


__all__ = (
    "PROJECT_ROOT",
    "SchemaDiff",
    "alembic_config",
    "apply_migrations",
    "current_revision",
    "detect_schema_drift",
)
