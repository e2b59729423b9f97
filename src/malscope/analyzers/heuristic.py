# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Rule-based classifier over the combined static and dynamic signals.

Each rule contributes a weight to one or more families when it matches.
Weights for a family combine as a noisy-or, ``1 - prod(1 - w)``, so more
independent evidence raises confidence without ever exceeding 1.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TypeVar

from malscope.models.analysis import DynamicAnalysis, StaticAnalysis
from malscope.models.classification import Classification, FamilyScore
from malscope.scanner.base import Classifier
from malscope.scanner.signals import SignalSurface

logger = logging.getLogger("malscope.analyzers.heuristic")

BENIGN_LABEL = "Benign"


@dataclass(frozen=True)
class Evidence:
    """Views over the analyses that rules query."""

    static: StaticAnalysis
    dynamic: DynamicAnalysis
    signals: SignalSurface

    @property
    def apis(self) -> set[str]:
        names = set(self.signals.sensitive_imports) | set(self.signals.observed_sensitive_apis)
        names.update(c.api for c in self.dynamic.api_calls)
        for group in self.static.imports:
            names.update(group.functions)
        return names

    @property
    def texts(self) -> list[str]:
        values = [s.value.lower() for s in self.static.strings]
        values.extend(p.command_line.lower() for p in self.dynamic.processes)
        return values

    def any_api(self, *names: str) -> bool:
        return not self.apis.isdisjoint(names)

    def any_text(self, *needles: str) -> bool:
        return any(n in text for text in self.texts for n in needles)


class IndicatorRule(ABC):
    """A single behavioral indicator with per-family weights."""

    rule_id: str
    title: str
    weights: dict[str, float]

    @abstractmethod
    def matches(self, evidence: Evidence) -> bool:
        ...


T = TypeVar("T", bound=IndicatorRule)

_RULES: list[type[IndicatorRule]] = []


def indicator(cls: type[T]) -> type[T]:
    """Decorator to register a rule class."""
    _RULES.append(cls)
    return cls


def default_rules() -> list[IndicatorRule]:
    return [cls() for cls in _RULES]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@indicator
class ProcessInjection(IndicatorRule):
    rule_id = "HEUR-INJECT-001"
    title = "Process injection techniques"
    weights = {"Trojan": 0.55, "Backdoor": 0.25, "Rootkit": 0.15}

    def matches(self, evidence: Evidence) -> bool:
        return evidence.any_api(
            "VirtualAllocEx", "WriteProcessMemory", "CreateRemoteThread",
            "CreateRemoteThreadEx", "NtUnmapViewOfSection", "QueueUserAPC",
            "SetThreadContext", "NtCreateThreadEx",
        )


@indicator
class RunKeyPersistence(IndicatorRule):
    rule_id = "HEUR-PERSIST-001"
    title = "Persistence mechanisms"
    weights = {"Backdoor": 0.35, "Trojan": 0.25}

    def matches(self, evidence: Evidence) -> bool:
        if any(
            r.suspicious and "currentversion\\run" in r.key.lower()
            for r in evidence.dynamic.registry_operations
        ):
            return True
        return evidence.any_text("currentversion\\run") and evidence.any_api(
            "RegSetValueExW", "RegSetValueExA", "RegCreateKeyExW", "CreateServiceW"
        )


@indicator
class FileEncryption(IndicatorRule):
    rule_id = "HEUR-CRYPT-001"
    title = "File encryption routines detected"
    weights = {"Ransomware": 0.5}

    def matches(self, evidence: Evidence) -> bool:
        return evidence.any_api("CryptEncrypt", "CryptGenKey", "BCryptEncrypt")


@indicator
class RansomNote(IndicatorRule):
    rule_id = "HEUR-RANSOM-001"
    title = "Ransom note creation behavior"
    weights = {"Ransomware": 0.6}

    NOTE_MARKERS = ("readme", "decrypt", "how_to", "restore_files", "recover")

    def matches(self, evidence: Evidence) -> bool:
        created = [
            f.path.lower()
            for f in evidence.dynamic.file_operations
            if f.operation == "create"
        ]
        return any(m in path for path in created for m in self.NOTE_MARKERS)


@indicator
class MassFileModification(IndicatorRule):
    rule_id = "HEUR-RANSOM-002"
    title = "Mass file enumeration"
    weights = {"Ransomware": 0.45, "Worm": 0.1}

    THRESHOLD = 10

    def matches(self, evidence: Evidence) -> bool:
        touched = {
            f.path
            for f in evidence.dynamic.file_operations
            if f.operation in ("modify", "delete")
        }
        return len(touched) >= self.THRESHOLD


@indicator
class ShadowCopyDeletion(IndicatorRule):
    rule_id = "HEUR-RANSOM-003"
    title = "Shadow copy deletion commands"
    weights = {"Ransomware": 0.7}

    def matches(self, evidence: Evidence) -> bool:
        return evidence.any_text("vssadmin delete", "shadowcopy delete", "recoveryenabled no")


@indicator
class Keylogging(IndicatorRule):
    rule_id = "HEUR-KEYLOG-001"
    title = "Keystroke capture APIs"
    weights = {"Keylogger": 0.6, "Spyware": 0.3}

    def matches(self, evidence: Evidence) -> bool:
        return evidence.any_api(
            "SetWindowsHookExW", "SetWindowsHookExA", "GetAsyncKeyState", "GetKeyboardState"
        )


@indicator
class CommandAndControl(IndicatorRule):
    rule_id = "HEUR-C2-001"
    title = "C2 communication patterns"
    weights = {"Backdoor": 0.45, "Botnet": 0.3, "Trojan": 0.2}

    C2_PORTS = frozenset({4444, 1337, 6666, 6667, 31337})

    def matches(self, evidence: Evidence) -> bool:
        for event in evidence.dynamic.network_activity:
            if event.port in self.C2_PORTS:
                return True
            if event.data and "beacon" in event.data.lower():
                return True
        return False


@indicator
class NetworkSpreading(IndicatorRule):
    rule_id = "HEUR-WORM-001"
    title = "Network propagation attempts"
    weights = {"Worm": 0.6, "Botnet": 0.2}

    def matches(self, evidence: Evidence) -> bool:
        if evidence.signals.distinct_destinations >= 10:
            return True
        return any(e.port == 445 for e in evidence.dynamic.network_activity)


@indicator
class EncodedShell(IndicatorRule):
    rule_id = "HEUR-EXEC-001"
    title = "Encoded or chained shell execution"
    weights = {"Trojan": 0.3, "Backdoor": 0.1}

    def matches(self, evidence: Evidence) -> bool:
        return evidence.any_text("powershell -enc", "powershell -e ", "cmd.exe /c")


@indicator
class PackedSections(IndicatorRule):
    rule_id = "HEUR-PACK-001"
    title = "Packed or encrypted sections"
    weights = {"Trojan": 0.2, "Cryptominer": 0.05}

    def matches(self, evidence: Evidence) -> bool:
        return evidence.signals.is_packed


@indicator
class AntiAnalysis(IndicatorRule):
    rule_id = "HEUR-EVADE-001"
    title = "Debugger and sandbox evasion"
    weights = {"Rootkit": 0.2, "Trojan": 0.1}

    def matches(self, evidence: Evidence) -> bool:
        return evidence.any_api(
            "IsDebuggerPresent", "CheckRemoteDebuggerPresent",
            "NtQueryInformationProcess", "NtQuerySystemInformation",
        )


@indicator
class CoinMining(IndicatorRule):
    rule_id = "HEUR-MINER-001"
    title = "Cryptocurrency mining pool references"
    weights = {"Cryptominer": 0.8}

    def matches(self, evidence: Evidence) -> bool:
        return evidence.any_text("stratum+tcp://", "xmrig", "minerd", "nicehash")


@indicator
class HostsTampering(IndicatorRule):
    rule_id = "HEUR-HOSTS-001"
    title = "Hosts file tampering"
    weights = {"Adware": 0.3, "Trojan": 0.2}

    def matches(self, evidence: Evidence) -> bool:
        return any(
            f.operation == "modify" and "drivers\\etc\\hosts" in f.path.lower()
            for f in evidence.dynamic.file_operations
        )


@indicator
class BrowserModification(IndicatorRule):
    rule_id = "HEUR-ADWARE-001"
    title = "Browser modification routines"
    weights = {"Adware": 0.45, "PUP": 0.35}

    def matches(self, evidence: Evidence) -> bool:
        return evidence.any_text(
            "\\google\\chrome\\user data", "\\mozilla\\firefox\\profiles",
            "searchscopes", "homepage", "toolbar",
        )


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class HeuristicClassifier(Classifier):
    """Deterministic weighted-indicator classifier."""

    def __init__(self, rules: list[IndicatorRule] | None = None) -> None:
        self._rules = rules if rules is not None else default_rules()

    @property
    def name(self) -> str:
        return "heuristic"

    @property
    def rules(self) -> list[IndicatorRule]:
        return list(self._rules)

    async def classify(
        self,
        static: StaticAnalysis,
        dynamic: DynamicAnalysis,
        signals: SignalSurface,
    ) -> Classification:
        evidence = Evidence(static=static, dynamic=dynamic, signals=signals)
        matched = [r for r in self._rules if r.matches(evidence)]

        remaining: dict[str, float] = {}
        for matched_rule in matched:
            for family, weight in matched_rule.weights.items():
                remaining[family] = remaining.get(family, 1.0) * (1.0 - weight)

        scores = sorted(
            (FamilyScore(family=family, confidence=round(1.0 - rest, 4))
             for family, rest in remaining.items()),
            key=lambda s: (-s.confidence, s.family),
        )
        indicators = [r.title for r in matched]

        if not scores:
            logger.debug("No indicators matched")
            return Classification(
                family=BENIGN_LABEL,
                confidence=0.0,
                indicators=[],
                description="No malicious indicators detected. The file appears to be clean.",
            )

        top = scores[0]
        return Classification(
            family=top.family,
            confidence=top.confidence,
            alternative_families=scores[1:],
            indicators=indicators,
            description=(
                f"{len(matched)} indicator(s) matched; behavior is most consistent "
                f"with {top.family}."
            ),
        )
