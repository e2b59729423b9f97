# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Reference analyzer collaborators and the default pipeline wiring."""

from __future__ import annotations

from malscope.analyzers.heuristic import HeuristicClassifier
from malscope.analyzers.recorded import RecordedDynamicAnalyzer, RecordedStaticAnalyzer
from malscope.analyzers.sandbox import NoSandboxDynamicAnalyzer
from malscope.analyzers.strings import BasicStaticAnalyzer
from malscope.core.config import Settings
from malscope.scanner.base import DynamicAnalyzer
from malscope.scanner.pipeline import AnalysisPipeline


def build_default_pipeline(settings: Settings, *, dynamic: bool = True) -> AnalysisPipeline:
    """Wire the reference analyzers according to *settings*.

    Static analysis prefers a recorded report and falls back to reading the
    artifact bytes. Dynamic analysis requires a recorded sandbox report
    unless *dynamic* is ``False``.
    """
    static = RecordedStaticAnalyzer(settings.reports_dir, fallback=BasicStaticAnalyzer())
    behavior: DynamicAnalyzer = (
        RecordedDynamicAnalyzer(settings.reports_dir) if dynamic else NoSandboxDynamicAnalyzer()
    )
    return AnalysisPipeline.from_settings(settings, static, behavior, HeuristicClassifier())


__all__ = [
    "BasicStaticAnalyzer",
    "HeuristicClassifier",
    "NoSandboxDynamicAnalyzer",
    "RecordedDynamicAnalyzer",
    "RecordedStaticAnalyzer",
    "build_default_pipeline",
]
