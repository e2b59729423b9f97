# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Scan submission and record models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from malscope.core.constants import (
    STATUS_LABELS,
    TERMINAL_STATUSES,
    FailureKind,
    ScanStatus,
    ThreatLevel,
)
from malscope.models.analysis import DynamicAnalysis, StaticAnalysis
from malscope.models.classification import Classification


class Scan(BaseModel):
    """The persistent record of one artifact's trip through analysis.

    Instances are immutable; lifecycle changes produce a new record via
    :meth:`evolve`, which re-runs the consistency checks below.
    """

    model_config = ConfigDict(frozen=True)

    scan_id: str
    owner_id: str
    file_name: str
    file_size: int = Field(gt=0)
    file_hash: str = Field(pattern=r"^[0-9a-f]{64}$")
    status: ScanStatus = ScanStatus.PENDING
    threat_level: ThreatLevel = ThreatLevel.CLEAN
    malware_family: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    static_analysis: StaticAnalysis | None = None
    dynamic_analysis: DynamicAnalysis | None = None
    classification: Classification | None = None
    failure_reason: str | None = None
    failure_kind: FailureKind | None = None
    scan_duration_ms: int | None = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @model_validator(mode="after")
    def _check_lifecycle_invariants(self) -> Scan:
        has_results = (
            self.static_analysis is not None
            or self.dynamic_analysis is not None
            or self.classification is not None
        )
        has_verdict = self.malware_family is not None or self.confidence is not None

        if self.status == ScanStatus.COMPLETED:
            if (
                self.static_analysis is None
                or self.dynamic_analysis is None
                or self.classification is None
            ):
                raise ValueError("completed scan requires static, dynamic and classification results")
            if self.threat_level == ThreatLevel.CLEAN and has_verdict:
                raise ValueError("clean scan must not carry a malware family or confidence")
            if self.threat_level != ThreatLevel.CLEAN and (
                self.malware_family is None or self.confidence is None
            ):
                raise ValueError(f"{self.threat_level} scan requires malware family and confidence")
            if self.failure_reason is not None:
                raise ValueError("completed scan cannot carry a failure reason")
        else:
            if has_results or has_verdict:
                raise ValueError(f"{self.status} scan cannot carry analysis results")
            if self.threat_level != ThreatLevel.CLEAN:
                raise ValueError(f"{self.status} scan has no threat level yet")

        if self.status == ScanStatus.FAILED and not self.failure_reason:
            raise ValueError("failed scan requires a failure reason")
        if self.status not in TERMINAL_STATUSES and (
            self.failure_reason is not None or self.completed_at is not None
        ):
            raise ValueError(f"{self.status} scan cannot be finalized")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status_label(self) -> str:
        return STATUS_LABELS[self.status]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def evolve(self, **changes: Any) -> Scan:
        """Return a validated copy with *changes* applied."""
        data = self.model_dump(exclude={"status_label"})
        data.update(changes)
        return Scan.model_validate(data)
