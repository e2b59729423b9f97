# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Shared test fixtures and scripted analyzer collaborators."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from malscope.core.config import Settings
from malscope.models.analysis import DynamicAnalysis, StaticAnalysis
from malscope.models.classification import Classification, FamilyScore
from malscope.scanner.base import Classifier, DynamicAnalyzer, StaticAnalyzer
from malscope.scanner.context import ArtifactRef
from malscope.scanner.engine import ScanEngine
from malscope.scanner.pipeline import AnalysisPipeline, PhaseTimeouts
from malscope.scanner.policy import ClassificationPolicy
from malscope.scanner.signals import SignalSurface
from malscope.storage.memory import MemoryScanStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"
REPORTS_DIR = FIXTURES_DIR / "reports"


def load_report(name: str) -> dict[str, Any]:
    return json.loads((REPORTS_DIR / name).read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Scripted collaborators
# ---------------------------------------------------------------------------


class _Scripted:
    """Returns a fixed result, optionally after a delay or by raising."""

    def __init__(
        self,
        result: Any = None,
        *,
        error: BaseException | None = None,
        delay: float = 0.0,
    ) -> None:
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = 0
        self.cancelled = False
        self.started = asyncio.Event()
        self.release: asyncio.Event | None = None

    def hold(self) -> asyncio.Event:
        """Block every call until the returned event is set."""
        self.release = asyncio.Event()
        return self.release

    async def _play(self) -> Any:
        self.calls += 1
        self.started.set()
        try:
            if self.release is not None:
                await self.release.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.result


class ScriptedStatic(_Scripted, StaticAnalyzer):
    def __init__(self, result: Any = None, **kwargs: Any) -> None:
        super().__init__(StaticAnalysis() if result is None else result, **kwargs)
        self.artifacts: list[ArtifactRef] = []

    @property
    def name(self) -> str:
        return "scripted-static"

    async def analyze(self, artifact: ArtifactRef) -> StaticAnalysis:
        self.artifacts.append(artifact)
        return await self._play()  # type: ignore[no-any-return]


class ScriptedDynamic(_Scripted, DynamicAnalyzer):
    def __init__(self, result: Any = None, **kwargs: Any) -> None:
        super().__init__(DynamicAnalysis() if result is None else result, **kwargs)

    @property
    def name(self) -> str:
        return "scripted-dynamic"

    async def analyze(self, artifact: ArtifactRef) -> DynamicAnalysis:
        return await self._play()  # type: ignore[no-any-return]


class ScriptedClassifier(_Scripted, Classifier):
    def __init__(self, result: Any = None, **kwargs: Any) -> None:
        super().__init__(trojan_classification() if result is None else result, **kwargs)
        self.seen_signals: list[SignalSurface] = []

    @property
    def name(self) -> str:
        return "scripted-classifier"

    async def classify(
        self,
        static: StaticAnalysis,
        dynamic: DynamicAnalysis,
        signals: SignalSurface,
    ) -> Classification:
        self.seen_signals.append(signals)
        return await self._play()  # type: ignore[no-any-return]


def trojan_classification() -> Classification:
    return Classification(
        family="Trojan",
        confidence=0.89,
        alternative_families=[
            FamilyScore(family="Backdoor", confidence=0.65),
            FamilyScore(family="Spyware", confidence=0.52),
        ],
        indicators=["Process injection techniques", "Persistence mechanisms"],
        description="Trojan-like behavior.",
    )


def family(name: str | None, confidence: float, *alternatives: tuple[str, float]) -> Classification:
    return Classification(
        family=name,
        confidence=confidence,
        alternative_families=[FamilyScore(family=f, confidence=c) for f, c in alternatives],
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop handlers installed by setup_logging during a test."""
    yield
    root = logging.getLogger("malscope")
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def _reset_db_connection():
    """Start every test without a leftover module-level connection."""
    import malscope.storage.database as db_mod

    db_mod._db = None
    yield
    db_mod._db = None


@pytest.fixture
def static_report() -> StaticAnalysis:
    return StaticAnalysis.model_validate(load_report("sample.static.json"))


@pytest.fixture
def dynamic_report() -> DynamicAnalysis:
    return DynamicAnalysis.model_validate(load_report("sample.dynamic.json"))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        store_backend="memory",
        db_path=tmp_path / "malscope.db",
        reports_dir=str(tmp_path / "reports"),
        static_timeout=2.0,
        dynamic_timeout=2.0,
        classify_timeout=2.0,
        log_format="text",
    )


@pytest.fixture
def memory_store() -> MemoryScanStore:
    return MemoryScanStore()


EngineFactory = Callable[..., ScanEngine]


@pytest.fixture
def make_engine(settings: Settings, memory_store: MemoryScanStore) -> EngineFactory:
    """Build an engine over scripted collaborators and the shared memory store."""

    def _make(
        static: StaticAnalyzer | None = None,
        dynamic: DynamicAnalyzer | None = None,
        classifier: Classifier | None = None,
        *,
        policy: ClassificationPolicy | None = None,
        timeouts: PhaseTimeouts | None = None,
        **overrides: Any,
    ) -> ScanEngine:
        cfg = settings.model_copy(update=overrides) if overrides else settings
        pipeline = AnalysisPipeline(
            static or ScriptedStatic(),
            dynamic or ScriptedDynamic(),
            classifier or ScriptedClassifier(),
            policy=policy,
            timeouts=timeouts or PhaseTimeouts.from_settings(cfg),
        )
        return ScanEngine(memory_store, pipeline, cfg)

    return _make
