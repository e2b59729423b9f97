# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Threat-level derivation from classifier confidence."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from malscope.core.constants import (
    BAND_CRITICAL,
    BAND_HIGH,
    BAND_MEDIUM,
    DEFAULT_BENIGN_FAMILIES,
    ThreatLevel,
)


@dataclass(frozen=True, slots=True)
class ThreatBands:
    """Lower edges of the confidence bands.

    A confidence must be strictly greater than an edge to enter the band
    above it, so ``0.90`` lands in ``high`` and ``0.9000001`` in
    ``critical``. Any positive confidence at or below ``medium`` is ``low``.
    """

    critical: float = BAND_CRITICAL
    high: float = BAND_HIGH
    medium: float = BAND_MEDIUM

    def __post_init__(self) -> None:
        if not 0.0 <= self.medium <= self.high <= self.critical <= 1.0:
            msg = (
                "Threat bands must satisfy 0 <= medium <= high <= critical <= 1, "
                f"got medium={self.medium} high={self.high} critical={self.critical}"
            )
            raise ValueError(msg)


DEFAULT_BANDS = ThreatBands()


def confidence_to_threat_level(
    confidence: float, bands: ThreatBands = DEFAULT_BANDS
) -> ThreatLevel:
    """Map a confidence in [0, 1] to one of the five threat levels."""
    if math.isnan(confidence) or not 0.0 <= confidence <= 1.0:
        raise ValueError(f"Confidence must be within [0, 1], got {confidence}")
    if confidence > bands.critical:
        return ThreatLevel.CRITICAL
    if confidence > bands.high:
        return ThreatLevel.HIGH
    if confidence > bands.medium:
        return ThreatLevel.MEDIUM
    if confidence > 0.0:
        return ThreatLevel.LOW
    return ThreatLevel.CLEAN


def is_benign_family(
    family: str | None, benign_families: Iterable[str] = DEFAULT_BENIGN_FAMILIES
) -> bool:
    if not family or not family.strip():
        return True
    benign = {b.lower() for b in benign_families}
    return family.strip().lower() in benign


def derive_threat_level(
    family: str | None,
    confidence: float,
    *,
    bands: ThreatBands = DEFAULT_BANDS,
    benign_families: Iterable[str] = DEFAULT_BENIGN_FAMILIES,
) -> ThreatLevel:
    """Threat level for a classifier's primary family and confidence.

    A missing or benign family is always ``clean`` regardless of confidence.
    """
    if is_benign_family(family, benign_families):
        return ThreatLevel.CLEAN
    return confidence_to_threat_level(confidence, bands)

