# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Rich console output formatter for scans."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from malscope import __version__
from malscope.core.constants import ScanStatus, ThreatLevel
from malscope.models.scan import Scan

console = Console()

THREAT_COLORS = {
    ThreatLevel.CRITICAL: "bold red",
    ThreatLevel.HIGH: "red",
    ThreatLevel.MEDIUM: "yellow",
    ThreatLevel.LOW: "cyan",
    ThreatLevel.CLEAN: "bold green",
}

STATUS_COLORS = {
    ScanStatus.PENDING: "dim",
    ScanStatus.ANALYZING: "cyan",
    ScanStatus.COMPLETED: "green",
    ScanStatus.FAILED: "bold red",
}


def _fmt_confidence(value: float | None) -> str:
    return "-" if value is None else f"{value:.0%}"


def format_scan(scan: Scan) -> None:
    """Print a scan record with Rich formatting."""
    console.print()
    console.print(f"[bold]malscope v{__version__}[/bold] - Malware Scan Report")
    console.print()

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_column("key", style="dim")
    info_table.add_column("value")
    info_table.add_row("Scan:", scan.scan_id)
    info_table.add_row("File:", f"{scan.file_name} ({scan.file_size:,} bytes)")
    info_table.add_row("SHA256:", scan.file_hash)
    status_color = STATUS_COLORS.get(scan.status, "white")
    info_table.add_row("Status:", f"[{status_color}]{scan.status_label}[/{status_color}]")
    if scan.scan_duration_ms is not None:
        info_table.add_row("Duration:", f"{scan.scan_duration_ms}ms")
    console.print(info_table)
    console.print()

    if scan.status == ScanStatus.FAILED:
        console.print(
            Panel(
                f"[bold red]FAILED ({scan.failure_kind})[/bold red]  {scan.failure_reason}",
                style="bold red",
            )
        )
        return

    if scan.status != ScanStatus.COMPLETED:
        console.print("[dim]Analysis has not finished yet.[/dim]")
        return

    color = THREAT_COLORS.get(scan.threat_level, "white")
    family = scan.malware_family or "no malware family"
    console.print(
        Panel(
            f"[{color}]THREAT: {scan.threat_level.upper()}[/{color}]"
            f"  {family} (confidence {_fmt_confidence(scan.confidence)})",
            style=color,
        )
    )

    classification = scan.classification
    if classification is not None:
        if classification.alternative_families:
            alt = Table(title="Alternative families", box=None, padding=(0, 2))
            alt.add_column("Family", style="bold")
            alt.add_column("Confidence", justify="right")
            for candidate in classification.alternative_families:
                alt.add_row(candidate.family, _fmt_confidence(candidate.confidence))
            console.print(alt)
        for indicator in classification.indicators:
            console.print(f"  - {indicator}")
        if classification.description:
            console.print()
            console.print(classification.description, style="dim")

    if scan.static_analysis is not None:
        entropy = scan.static_analysis.entropy
        console.print()
        console.print(
            f"[dim]Entropy {entropy.overall:.2f} bits/byte, "
            f"{len(scan.static_analysis.strings)} strings, "
            f"{len(scan.static_analysis.imports)} import groups[/dim]"
        )
    console.print()


def format_scan_list(scans: list[Scan]) -> None:
    table = Table(title="Scans")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("File", style="bold")
    table.add_column("Status")
    table.add_column("Threat")
    table.add_column("Family")
    table.add_column("Confidence", justify="right")
    table.add_column("Submitted")

    for scan in scans:
        color = THREAT_COLORS.get(scan.threat_level, "white")
        table.add_row(
            scan.scan_id,
            scan.file_name,
            scan.status_label,
            f"[{color}]{scan.threat_level}[/{color}]",
            scan.malware_family or "-",
            _fmt_confidence(scan.confidence),
            scan.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)
