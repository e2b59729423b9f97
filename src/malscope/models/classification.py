# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Malware classification models."""

from __future__ import annotations

from pydantic import Field

from malscope.models.analysis import AnalysisModel


class FamilyScore(AnalysisModel):
    """A candidate malware family and the classifier's confidence in it."""

    family: str
    confidence: float = Field(ge=0.0, le=1.0)


class Classification(AnalysisModel):
    """Classifier verdict for a single artifact.

    ``family`` is ``None`` (or a benign label) when nothing malicious was
    found. ``alternative_families`` is ranked by descending confidence.
    """

    family: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    alternative_families: list[FamilyScore] = Field(default_factory=list)
    indicators: list[str] = Field(default_factory=list)
    description: str = ""

    def candidates(self) -> list[FamilyScore]:
        """Primary and alternative families as one unranked candidate list."""
        out: list[FamilyScore] = []
        if self.family:
            out.append(FamilyScore(family=self.family, confidence=self.confidence))
        out.extend(self.alternative_families)
        return out
