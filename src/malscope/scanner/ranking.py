# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Deterministic ranking of candidate malware families."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from malscope.core.constants import DEFAULT_FAMILY_PRIORITY
from malscope.models.classification import FamilyScore


@dataclass(frozen=True, slots=True)
class FamilyRanking:
    primary: FamilyScore | None
    alternatives: list[FamilyScore] = field(default_factory=list)


def rank_families(
    candidates: Iterable[FamilyScore],
    priority: Sequence[str] = DEFAULT_FAMILY_PRIORITY,
) -> list[FamilyScore]:
    """Sort candidates by descending confidence.

    Equal confidences fall back to *priority* (earlier wins); families not
    listed there sort after all listed ones, alphabetically. The result
    depends only on the candidate values, never on input order.
    """
    order = {name.lower(): idx for idx, name in enumerate(priority)}
    unlisted = len(order)

    def _key(c: FamilyScore) -> tuple[float, int, str]:
        return (-c.confidence, order.get(c.family.lower(), unlisted), c.family)

    return sorted(candidates, key=_key)


def select_primary(
    candidates: Iterable[FamilyScore],
    priority: Sequence[str] = DEFAULT_FAMILY_PRIORITY,
) -> FamilyRanking:
    ranked = rank_families(candidates, priority)
    if not ranked:
        return FamilyRanking(primary=None)
    return FamilyRanking(primary=ranked[0], alternatives=ranked[1:])
