# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Custom exception hierarchy for malscope."""

from __future__ import annotations


class MalscopeError(Exception):
    """Base exception for all malscope errors."""


class ConfigurationError(MalscopeError):
    """Invalid or missing configuration."""


class ValidationError(MalscopeError):
    """Malformed scan submission."""


class AuthenticationRequiredError(MalscopeError):
    """No owner identity was supplied."""


class ForbiddenError(MalscopeError):
    """The requester may not act on this scan."""


class NotFoundError(MalscopeError):
    """Unknown scan, or one that belongs to another owner."""

    def __init__(self, scan_id: str) -> None:
        super().__init__(f"Scan {scan_id} not found")
        self.scan_id = scan_id


class AlreadyInProgressError(MalscopeError):
    """A run for this scan is already active."""

    def __init__(self, scan_id: str) -> None:
        super().__init__(f"Scan {scan_id} is already being analyzed")
        self.scan_id = scan_id


class InvalidTransitionError(MalscopeError):
    """A status change not permitted by the scan lifecycle."""


class AnalyzerError(MalscopeError):
    """Raised by an analyzer collaborator that cannot produce a result."""


class PhaseFailure(MalscopeError):
    """An analysis phase failed; the run ends in ``failed``."""

    def __init__(self, phase: str, reason: str, *, timed_out: bool = False) -> None:
        super().__init__(f"{phase}: {reason}")
        self.phase = phase
        self.reason = reason
        self.timed_out = timed_out


class PhaseTimeoutError(PhaseFailure):
    """An analysis phase exceeded its deadline."""

    def __init__(self, phase: str, timeout: float) -> None:
        super().__init__(phase, f"timed out after {timeout:.1f}s", timed_out=True)
        self.timeout = timeout


class AggregationError(MalscopeError):
    """Phase outputs could not be merged into a consistent verdict."""


class ScanCancelledError(MalscopeError):
    """The run was cancelled before reaching a terminal state."""


class StorageError(MalscopeError):
    """Database or storage operation failed."""
