# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Artifact reference and per-run context passed through the analysis pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field

from malscope.models.analysis import DynamicAnalysis, StaticAnalysis
from malscope.models.classification import Classification
from malscope.models.scan import Scan
from malscope.scanner.signals import SignalSurface


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """What analyzers receive: submission metadata plus the bytes, if held."""

    scan_id: str
    file_name: str
    file_size: int
    file_hash: str
    content: bytes | None = field(default=None, repr=False)

    @classmethod
    def from_scan(cls, scan: Scan, content: bytes | None = None) -> ArtifactRef:
        return cls(
            scan_id=scan.scan_id,
            file_name=scan.file_name,
            file_size=scan.file_size,
            file_hash=scan.file_hash,
            content=content,
        )


@dataclass
class RunContext:
    """Mutable state of one pipeline run.

    Each phase fills in its slot; nothing here outlives the run.
    """

    artifact: ArtifactRef
    static: StaticAnalysis | None = None
    dynamic: DynamicAnalysis | None = None
    signals: SignalSurface | None = None
    classification: Classification | None = None
    phase_durations_ms: dict[str, int] = field(default_factory=dict)
