# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Typer CLI application root."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import StrEnum
from pathlib import Path
from typing import Annotated

import typer

from malscope.cli.commands import db
from malscope.core.config import Settings, get_settings
from malscope.core.constants import ScanStatus
from malscope.core.exceptions import MalscopeError
from malscope.scanner.engine import ScanEngine

app = typer.Typer(
    name="malscope",
    help="Malware scan lifecycle and analysis aggregation engine",
    no_args_is_help=True,
)

app.add_typer(db.app, name="db", help="Database management")


class OutputFormat(StrEnum):
    CONSOLE = "console"
    JSON = "json"


OwnerOption = Annotated[
    str | None,
    typer.Option("--owner", help="Owner identity (default: MALSCOPE_DEFAULT_OWNER)"),
]
FormatOption = Annotated[
    OutputFormat,
    typer.Option("--format", "-f", help="Output format"),
]


@app.callback()
def main(
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="Override MALSCOPE_LOG_LEVEL")
    ] = None,
) -> None:
    from malscope.core.logging import setup_logging

    settings = get_settings()
    setup_logging(log_level or settings.log_level, settings.log_format)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _engine_session(settings: Settings, *, dynamic: bool = True) -> AsyncIterator[ScanEngine]:
    from malscope.analyzers import build_default_pipeline
    from malscope.storage.database import close_db, open_store

    store = await open_store(settings)
    pipeline = build_default_pipeline(settings, dynamic=dynamic)
    await pipeline.setup()
    engine = ScanEngine(store, pipeline, settings)
    try:
        yield engine
    finally:
        await engine.shutdown()
        await pipeline.teardown()
        await store.close()
        await close_db()


def _owner(owner: str | None, settings: Settings) -> str:
    chosen = owner or settings.default_owner
    if not chosen:
        typer.echo("Error: pass --owner or set MALSCOPE_DEFAULT_OWNER", err=True)
        raise typer.Exit(1)
    return chosen


def _run(coro) -> None:  # type: ignore[no-untyped-def]
    try:
        asyncio.run(coro)
    except MalscopeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc


def _write_output(text: str, output: Path | None) -> None:
    if output:
        output.write_text(text)
        typer.echo(f"Output written to {output}")
    else:
        sys.stdout.write(text + "\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def scan(
    file: Annotated[Path, typer.Argument(help="Artifact to analyze")],
    owner: OwnerOption = None,
    fmt: FormatOption = OutputFormat.CONSOLE,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output file path"),
    ] = None,
    reports_dir: Annotated[
        Path | None,
        typer.Option("--reports-dir", help="Directory of recorded analyzer reports"),
    ] = None,
    no_dynamic: Annotated[
        bool, typer.Option("--no-dynamic", help="Skip sandbox behavior (empty trace)")
    ] = False,
) -> None:
    """Submit FILE and run it through static, dynamic and classification phases."""
    if not file.is_file():
        typer.echo(f"File not found: {file}", err=True)
        raise typer.Exit(1)

    settings = get_settings()
    if reports_dir is not None:
        settings = settings.model_copy(update={"reports_dir": str(reports_dir)})
    requester = _owner(owner, settings)

    failed = False

    async def _scan() -> None:
        nonlocal failed
        content = file.read_bytes()
        async with _engine_session(settings, dynamic=not no_dynamic) as engine:
            submitted = await engine.submit(requester, file.name, len(content), content=content)
            result = await engine.run(submitted.scan_id)
        failed = result.status == ScanStatus.FAILED
        _emit(result, fmt, output)

    _run(_scan())
    if failed:
        raise typer.Exit(1)


def _emit(result, fmt: OutputFormat, output: Path | None) -> None:  # type: ignore[no-untyped-def]
    if fmt == OutputFormat.JSON:
        from malscope.cli.formatters.json_fmt import format_json
        _write_output(format_json(result), output)
    else:
        from malscope.cli.formatters.console import format_scan
        format_scan(result)


@app.command()
def show(
    scan_id: Annotated[str, typer.Argument(help="Scan ID")],
    owner: OwnerOption = None,
    fmt: FormatOption = OutputFormat.CONSOLE,
) -> None:
    """Show a stored scan."""
    settings = get_settings()
    requester = _owner(owner, settings)

    async def _show() -> None:
        async with _engine_session(settings) as engine:
            result = await engine.fetch(scan_id, requester)
        _emit(result, fmt, None)

    _run(_show())


@app.command(name="list")
def list_scans(
    owner: OwnerOption = None,
    fmt: FormatOption = OutputFormat.CONSOLE,
) -> None:
    """List your scans, newest first."""
    settings = get_settings()
    requester = _owner(owner, settings)

    async def _list() -> None:
        async with _engine_session(settings) as engine:
            scans = await engine.list_scans(requester)
        if fmt == OutputFormat.JSON:
            from malscope.cli.formatters.json_fmt import format_json_summary
            _write_output(format_json_summary(scans), None)
        else:
            from malscope.cli.formatters.console import format_scan_list
            format_scan_list(scans)

    _run(_list())


@app.command()
def delete(
    scan_id: Annotated[str, typer.Argument(help="Scan ID")],
    owner: OwnerOption = None,
) -> None:
    """Delete a stored scan."""
    settings = get_settings()
    requester = _owner(owner, settings)

    async def _delete() -> None:
        async with _engine_session(settings) as engine:
            await engine.delete_scan(scan_id, requester)
        typer.echo(f"Deleted scan {scan_id}")

    _run(_delete())


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Worker count"),
) -> None:
    """Start the malscope API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "malscope.api.app:create_app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        workers=workers or settings.api_workers,
        factory=True,
    )


@app.command()
def version() -> None:
    """Show the malscope version."""
    from malscope import __version__

    typer.echo(f"malscope v{__version__}")
