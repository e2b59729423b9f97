# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Signal surface: the combined static + dynamic features fed to classification."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from malscope.core.constants import (
    PACKED_ENTROPY_THRESHOLD,
    SENSITIVE_IMPORTS,
    StringType,
)
from malscope.models.analysis import DynamicAnalysis, StaticAnalysis


class SignalSurface(BaseModel):
    """Counts and names derived from both analyses.

    Every field is computed from the analysis results alone, so identical
    analyses always produce an identical surface.
    """

    model_config = ConfigDict(frozen=True)

    # static
    suspicious_strings: int = 0
    url_strings: int = 0
    ip_strings: int = 0
    registry_strings: int = 0
    suspicious_import_groups: int = 0
    sensitive_imports: list[str] = Field(default_factory=list)
    overall_entropy: float = 0.0
    packed_sections: list[str] = Field(default_factory=list)

    # dynamic
    api_calls: int = 0
    suspicious_api_calls: int = 0
    observed_sensitive_apis: list[str] = Field(default_factory=list)
    network_events: int = 0
    distinct_destinations: int = 0
    suspicious_file_operations: int = 0
    suspicious_registry_operations: int = 0
    processes: int = 0
    suspicious_processes: int = 0

    @property
    def is_packed(self) -> bool:
        return bool(self.packed_sections)

    @property
    def suspicious_total(self) -> int:
        return (
            self.suspicious_strings
            + self.suspicious_import_groups
            + self.suspicious_api_calls
            + self.suspicious_file_operations
            + self.suspicious_registry_operations
            + self.suspicious_processes
        )


def extract_signals(
    static: StaticAnalysis,
    dynamic: DynamicAnalysis,
    *,
    packed_entropy_threshold: float = PACKED_ENTROPY_THRESHOLD,
) -> SignalSurface:
    sensitive = sorted({f for group in static.imports for f in group.sensitive_functions})
    observed = sorted({c.api for c in dynamic.api_calls if c.api in SENSITIVE_IMPORTS})

    return SignalSurface(
        suspicious_strings=len(static.strings_of_type(StringType.SUSPICIOUS)),
        url_strings=len(static.strings_of_type(StringType.URL)),
        ip_strings=len(static.strings_of_type(StringType.IP)),
        registry_strings=len(static.strings_of_type(StringType.REGISTRY)),
        suspicious_import_groups=sum(1 for g in static.imports if g.suspicious),
        sensitive_imports=sensitive,
        overall_entropy=static.entropy.overall,
        packed_sections=static.entropy.packed_sections(packed_entropy_threshold),
        api_calls=len(dynamic.api_calls),
        suspicious_api_calls=len(dynamic.suspicious_api_calls),
        observed_sensitive_apis=observed,
        network_events=len(dynamic.network_activity),
        distinct_destinations=len({n.destination for n in dynamic.network_activity}),
        suspicious_file_operations=sum(1 for f in dynamic.file_operations if f.suspicious),
        suspicious_registry_operations=sum(
            1 for r in dynamic.registry_operations if r.suspicious
        ),
        processes=len(dynamic.processes),
        suspicious_processes=len(dynamic.suspicious_processes),
    )
