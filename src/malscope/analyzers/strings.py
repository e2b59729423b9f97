# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Content-based static analyzer: typed strings and entropy, plus PE structure."""

from __future__ import annotations

import asyncio
import math
import re
from collections import Counter

from malscope.analyzers.pe import parse_pe
from malscope.core.constants import SENSITIVE_IMPORTS, StringType
from malscope.core.exceptions import AnalyzerError
from malscope.models.analysis import (
    EntropyData,
    ExtractedString,
    PEHeader,
    SectionEntropy,
    StaticAnalysis,
)
from malscope.scanner.base import StaticAnalyzer
from malscope.scanner.context import ArtifactRef

_PRINTABLE_RE = re.compile(rb"[\x20-\x7e]{5,}")
_URL_RE = re.compile(r"^(?:https?|ftp)://\S+$", re.IGNORECASE)
_IP_RE = re.compile(r"^(?:(?:25[0-5]|2[0-4]\d|1?\d?\d)\.){3}(?:25[0-5]|2[0-4]\d|1?\d?\d)(?::\d+)?$")
_REGISTRY_RE = re.compile(r"^(?:HKEY_[A-Z_]+|HKLM|HKCU|HKCR|HKU)\\", re.IGNORECASE)
_FILE_RE = re.compile(r"^(?:[A-Za-z]:\\|\\\\|/(?:etc|tmp|usr|var|bin)/)|\.(?:exe|dll|sys|bat|ps1|vbs)$", re.IGNORECASE)

_SUSPICIOUS_KEYWORDS = (
    "powershell -enc",
    "cmd.exe /c",
    "vssadmin",
    "shadowcopy",
    "bcdedit",
    "encrypt",
    "bitcoin",
    "stratum+tcp",
    "xmrig",
    "mimikatz",
    "keylog",
)

_MAX_STRINGS = 500
_BLOCK_SIZE = 4096


def shannon_entropy(data: bytes) -> float:
    """Shannon entropy of *data* in bits per byte (0.0 for empty input)."""
    if not data:
        return 0.0
    length = len(data)
    entropy = 0.0
    for count in Counter(data).values():
        p = count / length
        entropy -= p * math.log2(p)
    return min(max(entropy, 0.0), 8.0)


def classify_string(value: str) -> StringType:
    if _URL_RE.match(value):
        return StringType.URL
    if _IP_RE.match(value):
        return StringType.IP
    if _REGISTRY_RE.match(value):
        return StringType.REGISTRY
    if value in SENSITIVE_IMPORTS:
        return StringType.SUSPICIOUS
    lowered = value.lower()
    if any(keyword in lowered for keyword in _SUSPICIOUS_KEYWORDS):
        return StringType.SUSPICIOUS
    if _FILE_RE.search(value):
        return StringType.FILE
    return StringType.NORMAL


def extract_strings(content: bytes, limit: int = _MAX_STRINGS) -> list[ExtractedString]:
    found: list[ExtractedString] = []
    for match in _PRINTABLE_RE.finditer(content):
        value = match.group().decode("ascii").strip()
        if len(value) < 5:
            continue
        found.append(ExtractedString(
            value=value,
            type=classify_string(value),
            offset=f"0x{match.start():08X}",
        ))
        if len(found) >= limit:
            break
    return found


def block_entropy(content: bytes, block_size: int = _BLOCK_SIZE) -> list[SectionEntropy]:
    blocks: list[SectionEntropy] = []
    for index, start in enumerate(range(0, len(content), block_size)):
        chunk = content[start:start + block_size]
        blocks.append(SectionEntropy(
            name=f"block{index:04d}",
            entropy=round(shannon_entropy(chunk), 4),
            size=len(chunk),
            virtual_size=len(chunk),
        ))
    return blocks


def analyze_bytes(content: bytes) -> StaticAnalysis:
    """Static analysis of raw bytes; non-PE content gets fixed-size entropy blocks."""
    strings = extract_strings(content)
    overall = round(shannon_entropy(content), 4)
    parsed = parse_pe(content)
    if parsed is None:
        return StaticAnalysis(
            pe_header=PEHeader(),
            strings=strings,
            entropy=EntropyData(overall=overall, sections=block_entropy(content)),
        )
    return StaticAnalysis(
        pe_header=parsed.header,
        strings=strings,
        imports=parsed.imports,
        entropy=EntropyData(overall=overall, sections=parsed.sections),
        opcodes=parsed.opcodes,
    )


class BasicStaticAnalyzer(StaticAnalyzer):
    """Static analysis computed from the artifact bytes alone."""

    @property
    def name(self) -> str:
        return "basic-static"

    async def analyze(self, artifact: ArtifactRef) -> StaticAnalysis:
        if artifact.content is None:
            raise AnalyzerError(f"No content available for {artifact.file_name}")
        return await asyncio.to_thread(analyze_bytes, artifact.content)
