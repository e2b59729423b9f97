# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Merge classifier output into a final verdict."""

from __future__ import annotations

import math
from dataclasses import dataclass

from malscope.core.constants import ThreatLevel
from malscope.core.exceptions import AggregationError
from malscope.models.classification import Classification, FamilyScore
from malscope.scanner.policy import ClassificationPolicy
from malscope.scanner.ranking import select_primary
from malscope.scanner.severity import derive_threat_level


@dataclass(frozen=True, slots=True)
class Verdict:
    """Threat level plus the normalized classification it was derived from.

    ``malware_family`` and ``confidence`` are ``None`` exactly when the
    threat level is ``clean``.
    """

    threat_level: ThreatLevel
    malware_family: str | None
    confidence: float | None
    classification: Classification

    @property
    def is_clean(self) -> bool:
        return self.threat_level == ThreatLevel.CLEAN


def _unique_candidates(classification: Classification) -> list[FamilyScore]:
    seen: dict[str, FamilyScore] = {}
    for candidate in classification.candidates():
        if math.isnan(candidate.confidence) or not 0.0 <= candidate.confidence <= 1.0:
            raise AggregationError(
                f"Confidence for {candidate.family!r} outside [0, 1]: {candidate.confidence}"
            )
        key = candidate.family.strip().lower()
        previous = seen.get(key)
        if previous is None:
            seen[key] = candidate
        elif previous.confidence != candidate.confidence:
            raise AggregationError(
                f"Family {candidate.family!r} reported with conflicting confidences "
                f"{previous.confidence} and {candidate.confidence}"
            )
    return list(seen.values())


def aggregate(
    classification: Classification,
    policy: ClassificationPolicy | None = None,
) -> Verdict:
    """Re-rank the classifier's candidates and derive the threat level.

    The classifier's own choice of primary family is not trusted: all
    candidates are ranked by confidence and the policy's priority table. A
    benign or missing top candidate yields ``clean``.
    """
    policy = policy or ClassificationPolicy()
    ranking = select_primary(_unique_candidates(classification), policy.family_priority)
    top = ranking.primary

    alternatives = [c for c in ranking.alternatives if not policy.is_benign(c.family)]
    level = derive_threat_level(
        top.family if top else None,
        top.confidence if top else 0.0,
        bands=policy.bands,
        benign_families=policy.benign_families,
    )
    primary = top if level != ThreatLevel.CLEAN else None

    normalized = Classification(
        family=primary.family if primary else None,
        confidence=primary.confidence if primary else 0.0,
        alternative_families=alternatives,
        indicators=list(classification.indicators),
        description=classification.description,
    )

    if primary is None:
        return Verdict(
            threat_level=ThreatLevel.CLEAN,
            malware_family=None,
            confidence=None,
            classification=normalized,
        )
    return Verdict(
        threat_level=level,
        malware_family=primary.family,
        confidence=primary.confidence,
        classification=normalized,
    )
