# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Database connection management and store selection.

SQLite (aiosqlite) is the durable backend; an in-memory store is available
for tests and throwaway runs. The choice is controlled by
``MALSCOPE_STORE_BACKEND``.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from malscope.core.config import Settings
from malscope.core.exceptions import ConfigurationError, StorageError
from malscope.storage.base import ScanStore
from malscope.storage.migrations import run_migrations

logger = logging.getLogger("malscope.storage.database")

# Milliseconds a writer waits on a lock held by another process (CLI vs API).
BUSY_TIMEOUT_MS = 5000

_db: aiosqlite.Connection | None = None


async def init_db(
    db_path: Path | str = "malscope.db",
    *,
    auto_migrate: bool = True,
) -> aiosqlite.Connection:
    """Initialize database connection, optionally run migrations, return connection.

    Enables WAL mode, foreign keys (transition history cascades on delete)
    and a busy timeout so the CLI and API can share one database file.
    When *auto_migrate* is True (the default), schema migrations are
    applied automatically on every initialization.
    """
    global _db

    if _db is not None:
        return _db

    try:
        _db = await aiosqlite.connect(str(db_path))
        _db.row_factory = aiosqlite.Row

        await _db.execute("PRAGMA journal_mode=WAL")
        await _db.execute("PRAGMA foreign_keys=ON")
        await _db.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")

        if auto_migrate:
            applied = await run_migrations(_db)
            if applied:
                logger.info("Database %s migrated to version %d", db_path, applied[-1].version)

        return _db
    except Exception as exc:
        if _db is not None:
            await _db.close()
        _db = None
        msg = f"Failed to initialize database at {db_path}: {exc}"
        raise StorageError(msg) from exc


async def get_db() -> aiosqlite.Connection:
    """Get the active database connection.

    Raises StorageError if the database has not been initialized.
    """
    if _db is None:
        raise StorageError("Database not initialized. Call init_db() first.")
    return _db


async def close_db() -> None:
    """Close the database connection."""
    global _db

    if _db is not None:
        await _db.close()
        _db = None


async def open_store(settings: Settings) -> ScanStore:
    """Return the :class:`ScanStore` selected by *settings*."""
    chosen = settings.store_backend.lower()

    if chosen == "memory":
        from malscope.storage.memory import MemoryScanStore

        return MemoryScanStore()

    if chosen == "sqlite":
        from malscope.storage.repositories.scans import ScanRepository

        db = await init_db(settings.db_path, auto_migrate=settings.auto_migrate)
        return ScanRepository(db)

    msg = f"Unknown store backend: {chosen!r}. Expected 'sqlite' or 'memory'."
    raise ConfigurationError(msg)
