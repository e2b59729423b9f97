# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Scan status transition table."""

from __future__ import annotations

from malscope.core.constants import ScanStatus
from malscope.core.exceptions import InvalidTransitionError

# ``pending -> failed`` only happens when a scan is cancelled before its run
# reaches ``analyzing``.
ALLOWED_TRANSITIONS: dict[ScanStatus, frozenset[ScanStatus]] = {
    ScanStatus.PENDING: frozenset({ScanStatus.ANALYZING, ScanStatus.FAILED}),
    ScanStatus.ANALYZING: frozenset({ScanStatus.COMPLETED, ScanStatus.FAILED}),
    ScanStatus.COMPLETED: frozenset(),
    ScanStatus.FAILED: frozenset(),
}


def can_transition(current: ScanStatus, target: ScanStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: ScanStatus, target: ScanStatus) -> None:
    """Raise :class:`InvalidTransitionError` unless *current* -> *target* is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move scan from {current} to {target}"
        )
