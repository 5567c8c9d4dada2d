"""Command-line schema drift check for CI.

Migrates a database and compares it with the ledger models. Exit codes:
``0`` in sync, ``1`` drift found, ``2`` the check itself could not run.
Without ``DATABASE_URL`` a throwaway SQLite file is used.

Examples
--------
>>> python -m aletheia.chat.storage.migration_check
"""

from __future__ import annotations

import asyncio
import os
import pathlib
import sys
import tempfile
import typing as typ

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import create_async_engine

from aletheia.logging import configure_logging, get_logger, log_error, log_info

from .migrations import apply_migrations, current_revision, detect_schema_drift

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .migrations import SchemaDiff

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_DRIFT = 1
EXIT_ERROR = 2


def resolve_database_url(environ: cabc.Mapping[str, str]) -> str:
    """Return ``DATABASE_URL`` or a fresh SQLite file URL."""
    configured = environ.get("DATABASE_URL")
    if configured:
        return configured
    work_dir = pathlib.Path(tempfile.mkdtemp(prefix="aletheia-drift-"))
    return f"sqlite+aiosqlite:///{work_dir / 'drift.db'}"


async def _migrate_and_compare(database_url: str) -> list[SchemaDiff]:
    engine = create_async_engine(database_url)
    try:
        await apply_migrations(engine)
        log_info(
            logger,
            "drift_check.migrated url=%s revision=%s",
            engine.url.render_as_string(),
            await current_revision(engine),
        )
        return await detect_schema_drift(engine)
    finally:
        await engine.dispose()


async def check_migrations_cli(environ: cabc.Mapping[str, str] | None = None) -> int:
    """Run the drift check and return the process exit code."""
    database_url = resolve_database_url(os.environ if environ is None else environ)
    try:
        diffs = await _migrate_and_compare(database_url)
    except (sa_exc.SQLAlchemyError, OSError, ModuleNotFoundError) as exc:
        log_error(logger, "drift_check.unavailable error=%s", exc)
        return EXIT_ERROR

    if not diffs:
        log_info(logger, "drift_check.clean")
        return EXIT_OK
    log_error(logger, "drift_check.drift differences=%s", len(diffs))
    for diff in diffs:
        log_error(logger, "drift_check.diff %s", diff)
    return EXIT_DRIFT


if __name__ == "__main__":
    configure_logging(os.environ.get("LOG_LEVEL"))
    sys.exit(asyncio.run(check_migrations_cli()))
