# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Domain models for malscope."""

from malscope.models.analysis import (
    APICall,
    DynamicAnalysis,
    EntropyData,
    ExtractedString,
    FileOperation,
    ImportGroup,
    NetworkActivity,
    OpcodeCount,
    OpcodeData,
    PEHeader,
    ProcessInfo,
    RegistryOperation,
    SectionEntropy,
    StaticAnalysis,
)
from malscope.models.classification import Classification, FamilyScore
from malscope.models.scan import Scan

__all__ = [
    "APICall",
    "Classification",
    "DynamicAnalysis",
    "EntropyData",
    "ExtractedString",
    "FamilyScore",
    "FileOperation",
    "ImportGroup",
    "NetworkActivity",
    "OpcodeCount",
    "OpcodeData",
    "PEHeader",
    "ProcessInfo",
    "RegistryOperation",
    "Scan",
    "SectionEntropy",
    "StaticAnalysis",
]
