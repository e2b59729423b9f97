# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Static and dynamic analysis result models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from malscope.core.constants import (
    ENTROPY_MAX,
    SENSITIVE_IMPORTS,
    FileOperationType,
    NetworkProtocol,
    RegistryOperationType,
    StringType,
)


class AnalysisModel(BaseModel):
    """Immutable result model that also accepts camelCase analyzer reports."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Static analysis
# ---------------------------------------------------------------------------


class PEHeader(AnalysisModel):
    """Header metadata reported by the static analyzer."""

    machine: str = ""
    number_of_sections: int = Field(default=0, ge=0)
    timestamp: str = ""
    characteristics: list[str] = Field(default_factory=list)
    subsystem: str = ""
    dll_characteristics: list[str] = Field(default_factory=list)
    entry_point: str = ""
    image_base: str = ""
    section_alignment: int = Field(default=0, ge=0)
    file_alignment: int = Field(default=0, ge=0)


class ExtractedString(AnalysisModel):
    value: str
    type: StringType = StringType.NORMAL
    offset: str = ""


class ImportGroup(AnalysisModel):
    """Functions imported from a single module.

    A group is suspicious when the analyzer says so or when any of its
    functions is in :data:`SENSITIVE_IMPORTS`.
    """

    dll: str
    functions: list[str] = Field(default_factory=list)
    suspicious: bool = False

    @model_validator(mode="before")
    @classmethod
    def _flag_sensitive(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("suspicious"):
            if any(f in SENSITIVE_IMPORTS for f in data.get("functions") or ()):
                data = {**data, "suspicious": True}
        return data

    @property
    def sensitive_functions(self) -> list[str]:
        return [f for f in self.functions if f in SENSITIVE_IMPORTS]


class SectionEntropy(AnalysisModel):
    name: str
    entropy: float = Field(ge=0.0, le=ENTROPY_MAX)
    size: int = Field(default=0, ge=0)
    virtual_size: int = Field(default=0, ge=0)


class EntropyData(AnalysisModel):
    """Shannon entropy in bits per byte, bounded to [0, 8]."""

    overall: float = Field(default=0.0, ge=0.0, le=ENTROPY_MAX)
    sections: list[SectionEntropy] = Field(default_factory=list)

    def packed_sections(self, threshold: float) -> list[str]:
        return [s.name for s in self.sections if s.entropy >= threshold]


class OpcodeCount(AnalysisModel):
    opcode: str
    count: int = Field(ge=0)


class OpcodeData(AnalysisModel):
    histogram: list[OpcodeCount] = Field(default_factory=list)
    sequences: list[str] = Field(default_factory=list)


class StaticAnalysis(AnalysisModel):
    """Everything the static analyzer extracts from an artifact."""

    pe_header: PEHeader = Field(default_factory=PEHeader)
    strings: list[ExtractedString] = Field(default_factory=list)
    imports: list[ImportGroup] = Field(default_factory=list)
    entropy: EntropyData = Field(default_factory=EntropyData)
    opcodes: OpcodeData = Field(default_factory=OpcodeData)

    def strings_of_type(self, string_type: StringType) -> list[ExtractedString]:
        return [s for s in self.strings if s.type == string_type]


# ---------------------------------------------------------------------------
# Dynamic analysis
# ---------------------------------------------------------------------------


class APICall(AnalysisModel):
    timestamp: str
    api: str
    module: str = ""
    arguments: list[str] = Field(default_factory=list)
    return_value: str = ""
    suspicious: bool = False


class NetworkActivity(AnalysisModel):
    timestamp: str
    type: NetworkProtocol
    destination: str
    port: int = Field(ge=0, le=65535)
    data: str | None = None


class FileOperation(AnalysisModel):
    timestamp: str
    operation: FileOperationType
    path: str
    suspicious: bool = False


class RegistryOperation(AnalysisModel):
    timestamp: str
    operation: RegistryOperationType
    key: str
    value: str | None = None
    suspicious: bool = False


_TIMESTAMPED_FIELDS = ("api_calls", "network_activity", "file_operations", "registry_operations")


def _event_timestamp(event: Any) -> str:
    if isinstance(event, dict):
        return str(event.get("timestamp", ""))
    return str(getattr(event, "timestamp", ""))


class ProcessInfo(AnalysisModel):
    pid: int = Field(ge=0)
    name: str
    parent_pid: int = Field(ge=0)
    command_line: str = ""
    suspicious: bool = False


class DynamicAnalysis(AnalysisModel):
    """Behavior captured while the artifact ran in a sandbox.

    Timestamped event lists are kept in timestamp order; events sharing a
    timestamp keep the order the analyzer reported them in.
    """

    api_calls: list[APICall] = Field(default_factory=list)
    network_activity: list[NetworkActivity] = Field(default_factory=list)
    file_operations: list[FileOperation] = Field(default_factory=list)
    registry_operations: list[RegistryOperation] = Field(default_factory=list)
    processes: list[ProcessInfo] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _order_by_timestamp(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        ordered = dict(data)
        for name in _TIMESTAMPED_FIELDS:
            for key in (name, to_camel(name)):
                events = ordered.get(key)
                if isinstance(events, list):
                    ordered[key] = sorted(events, key=_event_timestamp)
        return ordered

    @property
    def suspicious_api_calls(self) -> list[APICall]:
        return [c for c in self.api_calls if c.suspicious]

    @property
    def suspicious_processes(self) -> list[ProcessInfo]:
        return [p for p in self.processes if p.suspicious]
