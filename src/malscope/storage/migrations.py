# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Versioned schema migrations for the scan database.

Each migration is a numbered list of SQL statements. Applied versions are
recorded in ``schema_migrations``; a migration either applies completely
and is recorded, or is rolled back and raises :class:`StorageError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import aiosqlite

from malscope.core.exceptions import StorageError

logger = logging.getLogger("malscope.storage.migrations")


@dataclass(frozen=True, slots=True)
class Migration:
    version: int
    name: str
    statements: tuple[str, ...]


_SCHEMA_MIGRATIONS_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

_SCANS_DDL = """
CREATE TABLE IF NOT EXISTS scans (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    file_name TEXT NOT NULL,
    file_size INTEGER NOT NULL CHECK (file_size > 0),
    file_hash TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'analyzing', 'completed', 'failed')),
    threat_level TEXT NOT NULL DEFAULT 'clean'
        CHECK (threat_level IN ('clean', 'low', 'medium', 'high', 'critical')),
    malware_family TEXT,
    confidence REAL CHECK (confidence IS NULL OR (confidence >= 0.0 AND confidence <= 1.0)),
    static_analysis TEXT,
    dynamic_analysis TEXT,
    classification TEXT,
    failure_reason TEXT,
    failure_kind TEXT,
    scan_duration_ms INTEGER CHECK (scan_duration_ms IS NULL OR scan_duration_ms >= 0),
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT
)
"""

_SCAN_TRANSITIONS_DDL = """
CREATE TABLE IF NOT EXISTS scan_transitions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    scan_id TEXT NOT NULL REFERENCES scans(id) ON DELETE CASCADE,
    from_status TEXT,
    to_status TEXT NOT NULL,
    recorded_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        1,
        "initial_schema",
        (
            _SCANS_DDL,
            "CREATE INDEX IF NOT EXISTS idx_scans_owner ON scans(owner_id, created_at)",
            "CREATE INDEX IF NOT EXISTS idx_scans_status ON scans(status)",
            "CREATE INDEX IF NOT EXISTS idx_scans_file_hash ON scans(file_hash)",
        ),
    ),
    Migration(
        2,
        "scan_transitions_table",
        (
            _SCAN_TRANSITIONS_DDL,
            "CREATE INDEX IF NOT EXISTS idx_scan_transitions_scan ON scan_transitions(scan_id)",
        ),
    ),
)

LATEST_VERSION = MIGRATIONS[-1].version


def all_migrations() -> list[Migration]:
    return list(MIGRATIONS)


async def get_current_version(db: aiosqlite.Connection) -> int:
    """Highest applied version; 0 for a fresh database."""
    await db.execute(_SCHEMA_MIGRATIONS_DDL)
    await db.commit()
    cursor = await db.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
    row = await cursor.fetchone()
    return int(row[0]) if row else 0


async def get_pending_migrations(db: aiosqlite.Connection) -> list[Migration]:
    current = await get_current_version(db)
    if current > LATEST_VERSION:
        raise StorageError(
            f"Database schema version {current} is newer than this build "
            f"(latest known {LATEST_VERSION})"
        )
    return [m for m in MIGRATIONS if m.version > current]


async def _apply(db: aiosqlite.Connection, migration: Migration) -> None:
    try:
        for statement in migration.statements:
            await db.execute(statement)
        await db.execute(
            "INSERT INTO schema_migrations (version, name) VALUES (?, ?)",
            (migration.version, migration.name),
        )
        await db.commit()
    except aiosqlite.Error as exc:
        await db.rollback()
        raise StorageError(
            f"Migration {migration.version:03d} ({migration.name}) failed: {exc}"
        ) from exc


async def run_migrations(db: aiosqlite.Connection) -> list[Migration]:
    """Apply pending migrations in version order and return them."""
    applied: list[Migration] = []
    for migration in await get_pending_migrations(db):
        logger.info("Applying migration %03d: %s", migration.version, migration.name)
        await _apply(db, migration)
        applied.append(migration)
    return applied
