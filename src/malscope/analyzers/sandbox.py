# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Dynamic analyzer used when no sandbox is available."""

from __future__ import annotations

from malscope.models.analysis import DynamicAnalysis
from malscope.scanner.base import DynamicAnalyzer
from malscope.scanner.context import ArtifactRef


class NoSandboxDynamicAnalyzer(DynamicAnalyzer):
    """Reports an empty behavior trace.

    Only for explicit opt-out of dynamic analysis (``malscope scan
    --no-dynamic``); the verdict then rests on static signals alone.
    """

    @property
    def name(self) -> str:
        return "no-sandbox"

    async def analyze(self, artifact: ArtifactRef) -> DynamicAnalysis:
        return DynamicAnalysis()
