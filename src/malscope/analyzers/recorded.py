# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Analyzers that replay reports produced by an external toolchain.

Reports live in a single directory and are keyed by the artifact's SHA-256:
``<sha256>.static.json`` and ``<sha256>.dynamic.json``. Both snake_case and
camelCase field names are accepted.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from malscope.core.exceptions import AnalyzerError
from malscope.models.analysis import DynamicAnalysis, StaticAnalysis
from malscope.scanner.base import DynamicAnalyzer, StaticAnalyzer
from malscope.scanner.context import ArtifactRef

logger = logging.getLogger("malscope.analyzers.recorded")


def report_path(reports_dir: Path, file_hash: str, kind: str) -> Path:
    return reports_dir / f"{file_hash}.{kind}.json"


def _read_report(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise AnalyzerError(f"No recorded report at {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise AnalyzerError(f"Unreadable report {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise AnalyzerError(f"Report {path} must contain a JSON object")
    return data


class RecordedStaticAnalyzer(StaticAnalyzer):
    """Loads ``<sha256>.static.json``; optionally falls back to another analyzer."""

    def __init__(self, reports_dir: str | Path, fallback: StaticAnalyzer | None = None) -> None:
        self._dir = Path(reports_dir)
        self._fallback = fallback

    @property
    def name(self) -> str:
        return "recorded-static"

    async def analyze(self, artifact: ArtifactRef) -> StaticAnalysis:
        path = report_path(self._dir, artifact.file_hash, "static")
        if not path.exists() and self._fallback is not None:
            logger.debug("No static report for %s, using %s", artifact.file_hash, self._fallback.name)
            return await self._fallback.analyze(artifact)
        data = await asyncio.to_thread(_read_report, path)
        return StaticAnalysis.model_validate(data)


class RecordedDynamicAnalyzer(DynamicAnalyzer):
    """Loads ``<sha256>.dynamic.json``; optionally falls back to another analyzer."""

    def __init__(self, reports_dir: str | Path, fallback: DynamicAnalyzer | None = None) -> None:
        self._dir = Path(reports_dir)
        self._fallback = fallback

    @property
    def name(self) -> str:
        return "recorded-dynamic"

    async def analyze(self, artifact: ArtifactRef) -> DynamicAnalysis:
        path = report_path(self._dir, artifact.file_hash, "dynamic")
        if not path.exists() and self._fallback is not None:
            logger.debug("No dynamic report for %s, using %s", artifact.file_hash, self._fallback.name)
            return await self._fallback.analyze(artifact)
        data = await asyncio.to_thread(_read_report, path)
        return DynamicAnalysis.model_validate(data)
