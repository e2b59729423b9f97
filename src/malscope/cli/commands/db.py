# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Database management commands."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite
import typer

app = typer.Typer()


@asynccontextmanager
async def _connection(*, auto_migrate: bool) -> AsyncIterator[aiosqlite.Connection]:
    from malscope.core.config import get_settings
    from malscope.storage.database import close_db, init_db

    settings = get_settings()
    typer.echo(f"Database: {settings.db_path}")
    db = await init_db(settings.db_path, auto_migrate=auto_migrate)
    try:
        yield db
    finally:
        await close_db()


def _run(coro) -> None:  # type: ignore[no-untyped-def]
    from malscope.core.exceptions import MalscopeError

    try:
        asyncio.run(coro)
    except MalscopeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc


@app.command()
def init() -> None:
    """Create the database and bring its schema up to date."""

    async def _init() -> None:
        async with _connection(auto_migrate=True):
            pass
        typer.echo("Database initialized.")

    _run(_init())


@app.command()
def migrate() -> None:
    """Apply pending schema migrations, reporting each one."""

    async def _migrate() -> None:
        from malscope.storage.migrations import (
            get_current_version,
            get_pending_migrations,
            run_migrations,
        )

        async with _connection(auto_migrate=False) as db:
            typer.echo(f"Current schema version: {await get_current_version(db)}")
            if not await get_pending_migrations(db):
                typer.echo("No pending migrations.")
                return
            for m in await run_migrations(db):
                typer.echo(f"Applied migration {m.version:03d}: {m.name}")
            typer.echo(f"Schema version is now: {await get_current_version(db)}")

    _run(_migrate())


@app.command()
def status() -> None:
    """Show the schema version and how many scans sit in each status."""

    async def _status() -> None:
        from malscope.storage.migrations import LATEST_VERSION, get_current_version

        async with _connection(auto_migrate=True) as db:
            version = await get_current_version(db)
            typer.echo(f"Schema version: {version} (latest {LATEST_VERSION})")
            cursor = await db.execute(
                "SELECT status, COUNT(*) AS n FROM scans GROUP BY status ORDER BY status"
            )
            rows = await cursor.fetchall()
            if not rows:
                typer.echo("  no scans")
            for row in rows:
                typer.echo(f"  {row['status']}: {row['n']}")

    _run(_status())
