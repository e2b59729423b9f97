# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Analysis pipeline: static || dynamic, then classification, then aggregation."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from malscope.core.config import Settings
from malscope.core.constants import Phase
from malscope.core.exceptions import PhaseFailure, PhaseTimeoutError
from malscope.models.analysis import DynamicAnalysis, StaticAnalysis
from malscope.models.classification import Classification
from malscope.scanner.aggregate import Verdict, aggregate
from malscope.scanner.base import Analyzer, Classifier, DynamicAnalyzer, StaticAnalyzer
from malscope.scanner.context import ArtifactRef, RunContext
from malscope.scanner.policy import ClassificationPolicy
from malscope.scanner.signals import SignalSurface, extract_signals

logger = logging.getLogger("malscope.scanner.pipeline")

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class PhaseTimeouts:
    """Per-phase deadlines in seconds; ``0`` disables a deadline."""

    static: float = 30.0
    dynamic: float = 120.0
    classification: float = 15.0

    @classmethod
    def from_settings(cls, settings: Settings) -> PhaseTimeouts:
        return cls(
            static=settings.static_timeout,
            dynamic=settings.dynamic_timeout,
            classification=settings.classify_timeout,
        )

    def for_phase(self, phase: Phase) -> float:
        return {
            Phase.STATIC: self.static,
            Phase.DYNAMIC: self.dynamic,
            Phase.CLASSIFICATION: self.classification,
        }[phase]


@dataclass(frozen=True)
class PipelineOutcome:
    static: StaticAnalysis
    dynamic: DynamicAnalysis
    signals: SignalSurface
    verdict: Verdict
    phase_durations_ms: dict[str, int] = field(default_factory=dict)


class AnalysisPipeline:
    """Drives one artifact through the three analysis phases.

    Static and dynamic analysis run concurrently. If either fails, the other
    is cancelled and the classifier is never called. The classifier sees
    both results and the derived :class:`SignalSurface`; its output is then
    re-ranked and mapped to a threat level by :func:`aggregate`.

    Raises :class:`PhaseFailure` (or :class:`PhaseTimeoutError`) for a failed
    phase and :class:`AggregationError` for inconsistent classifier output.
    Cancellation of the calling task propagates into every running phase.
    """

    def __init__(
        self,
        static_analyzer: StaticAnalyzer,
        dynamic_analyzer: DynamicAnalyzer,
        classifier: Classifier,
        policy: ClassificationPolicy | None = None,
        timeouts: PhaseTimeouts | None = None,
    ) -> None:
        self._static = static_analyzer
        self._dynamic = dynamic_analyzer
        self._classifier = classifier
        self.policy = policy or ClassificationPolicy()
        self.timeouts = timeouts or PhaseTimeouts()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        static_analyzer: StaticAnalyzer,
        dynamic_analyzer: DynamicAnalyzer,
        classifier: Classifier,
    ) -> AnalysisPipeline:
        return cls(
            static_analyzer,
            dynamic_analyzer,
            classifier,
            policy=ClassificationPolicy.from_settings(settings),
            timeouts=PhaseTimeouts.from_settings(settings),
        )

    @property
    def analyzers(self) -> list[Analyzer]:
        return [self._static, self._dynamic, self._classifier]

    async def setup(self) -> None:
        for analyzer in self.analyzers:
            await analyzer.setup()

    async def teardown(self) -> None:
        for analyzer in self.analyzers:
            await analyzer.teardown()

    async def execute(self, artifact: ArtifactRef) -> PipelineOutcome:
        ctx = RunContext(artifact=artifact)

        static_task = asyncio.create_task(
            self._run_phase(
                ctx, Phase.STATIC, lambda: self._static.analyze(artifact), StaticAnalysis
            ),
            name=f"static:{artifact.scan_id}",
        )
        dynamic_task = asyncio.create_task(
            self._run_phase(
                ctx, Phase.DYNAMIC, lambda: self._dynamic.analyze(artifact), DynamicAnalysis
            ),
            name=f"dynamic:{artifact.scan_id}",
        )
        try:
            ctx.static, ctx.dynamic = await asyncio.gather(static_task, dynamic_task)
        except BaseException:
            for task in (static_task, dynamic_task):
                task.cancel()
            await asyncio.gather(static_task, dynamic_task, return_exceptions=True)
            raise

        ctx.signals = extract_signals(
            ctx.static,
            ctx.dynamic,
            packed_entropy_threshold=self.policy.packed_entropy_threshold,
        )
        static, dynamic, signals = ctx.static, ctx.dynamic, ctx.signals
        ctx.classification = await self._run_phase(
            ctx,
            Phase.CLASSIFICATION,
            lambda: self._classifier.classify(static, dynamic, signals),
            Classification,
        )

        verdict = aggregate(ctx.classification, self.policy)
        logger.info(
            "Scan %s verdict: threat=%s family=%s confidence=%s",
            artifact.scan_id,
            verdict.threat_level,
            verdict.malware_family,
            verdict.confidence,
            extra={"scan_id": artifact.scan_id},
        )
        return PipelineOutcome(
            static=static,
            dynamic=dynamic,
            signals=signals,
            verdict=verdict,
            phase_durations_ms=dict(ctx.phase_durations_ms),
        )

    async def _run_phase(
        self,
        ctx: RunContext,
        phase: Phase,
        call: Callable[[], Awaitable[Any]],
        model: type[ModelT],
    ) -> ModelT:
        timeout = self.timeouts.for_phase(phase)
        scan_id = ctx.artifact.scan_id
        start = time.monotonic()
        deadline = asyncio.timeout(timeout if timeout > 0 else None)
        logger.debug("Running %s phase", phase, extra={"scan_id": scan_id, "phase": phase})

        try:
            async with deadline:
                raw = await call()
        except TimeoutError as exc:
            if deadline.expired():
                logger.warning(
                    "%s phase timed out after %.1fs",
                    phase,
                    timeout,
                    extra={"scan_id": scan_id, "phase": phase},
                )
                raise PhaseTimeoutError(phase, timeout) from exc
            raise PhaseFailure(phase, _describe(exc), timed_out=True) from exc
        except PhaseFailure:
            raise
        except Exception as exc:
            logger.warning(
                "%s phase failed: %s",
                phase,
                exc,
                extra={"scan_id": scan_id, "phase": phase},
            )
            raise PhaseFailure(phase, _describe(exc)) from exc
        finally:
            ctx.phase_durations_ms[str(phase)] = int((time.monotonic() - start) * 1000)

        if isinstance(raw, model):
            return raw
        if raw is None:
            raise PhaseFailure(phase, "analyzer returned no result")
        try:
            return model.model_validate(raw)
        except PydanticValidationError as exc:
            raise PhaseFailure(phase, f"invalid {model.__name__}: {exc}") from exc


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return message if message else type(exc).__name__
