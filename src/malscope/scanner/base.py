# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Abstract interfaces for the analysis collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod

from malscope.models.analysis import DynamicAnalysis, StaticAnalysis
from malscope.models.classification import Classification
from malscope.scanner.context import ArtifactRef
from malscope.scanner.signals import SignalSurface


class Analyzer(ABC):
    """Common lifecycle for every collaborator.

    Implementations must not keep state between invocations: the engine
    treats each call as a pure function of its inputs.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs and failure reasons."""
        ...

    async def setup(self) -> None:
        """Optional initialization."""

    async def teardown(self) -> None:
        """Optional cleanup."""


class StaticAnalyzer(Analyzer):
    @abstractmethod
    async def analyze(self, artifact: ArtifactRef) -> StaticAnalysis:
        """Extract header metadata, strings, imports, entropy and opcodes."""
        ...


class DynamicAnalyzer(Analyzer):
    @abstractmethod
    async def analyze(self, artifact: ArtifactRef) -> DynamicAnalysis:
        """Return the behavior trace observed while executing the artifact."""
        ...


class Classifier(Analyzer):
    @abstractmethod
    async def classify(
        self,
        static: StaticAnalysis,
        dynamic: DynamicAnalysis,
        signals: SignalSurface,
    ) -> Classification:
        """Score candidate families from the combined analyses."""
        ...
