# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Enumerations, status labels, and classification policy defaults."""

from enum import StrEnum


class ScanStatus(StrEnum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES: frozenset[ScanStatus] = frozenset(
    {ScanStatus.COMPLETED, ScanStatus.FAILED}
)

# Internal status -> label shown to API and CLI consumers.
STATUS_LABELS: dict[ScanStatus, str] = {
    ScanStatus.PENDING: "pending",
    ScanStatus.ANALYZING: "scanning",
    ScanStatus.COMPLETED: "completed",
    ScanStatus.FAILED: "failed",
}


class ThreatLevel(StrEnum):
    CLEAN = "clean"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Phase(StrEnum):
    STATIC = "static"
    DYNAMIC = "dynamic"
    CLASSIFICATION = "classification"


class FailureKind(StrEnum):
    PHASE_FAILURE = "phase_failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    AGGREGATION_ERROR = "aggregation_error"


class StringType(StrEnum):
    URL = "url"
    IP = "ip"
    REGISTRY = "registry"
    FILE = "file"
    SUSPICIOUS = "suspicious"
    NORMAL = "normal"


class NetworkProtocol(StrEnum):
    DNS = "dns"
    HTTP = "http"
    TCP = "tcp"
    UDP = "udp"


class FileOperationType(StrEnum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    READ = "read"


class RegistryOperationType(StrEnum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    QUERY = "query"


MALWARE_FAMILIES: tuple[str, ...] = (
    "Ransomware",
    "Trojan",
    "Worm",
    "Spyware",
    "Adware",
    "Rootkit",
    "Backdoor",
    "Keylogger",
    "Cryptominer",
    "Botnet",
    "PUP",
)

# Tie-break order for equally confident families (earlier wins).
DEFAULT_FAMILY_PRIORITY: tuple[str, ...] = (
    "Ransomware",
    "Rootkit",
    "Backdoor",
    "Trojan",
    "Worm",
    "Botnet",
    "Spyware",
    "Keylogger",
    "Cryptominer",
    "Adware",
    "PUP",
)

DEFAULT_BENIGN_FAMILIES: tuple[str, ...] = ("Benign", "Clean")

# Lower edges of each band; a confidence must be strictly greater to qualify.
BAND_CRITICAL = 0.90
BAND_HIGH = 0.75
BAND_MEDIUM = 0.55

ENTROPY_MAX = 8.0
PACKED_ENTROPY_THRESHOLD = 7.5

# Imported functions that mark their import group as suspicious.
SENSITIVE_IMPORTS: frozenset[str] = frozenset({
    # process injection
    "VirtualAlloc",
    "VirtualAllocEx",
    "VirtualProtect",
    "VirtualProtectEx",
    "WriteProcessMemory",
    "ReadProcessMemory",
    "CreateRemoteThread",
    "CreateRemoteThreadEx",
    "NtCreateThreadEx",
    "NtUnmapViewOfSection",
    "QueueUserAPC",
    "SetThreadContext",
    "OpenProcess",
    # execution
    "ShellExecuteW",
    "ShellExecuteA",
    "WinExec",
    "CreateProcessW",
    "CreateProcessA",
    # keylogging
    "SetWindowsHookExW",
    "SetWindowsHookExA",
    "GetAsyncKeyState",
    "GetKeyboardState",
    "GetForegroundWindow",
    # persistence
    "RegSetValueExW",
    "RegSetValueExA",
    "RegCreateKeyExW",
    "CreateServiceW",
    # crypto
    "CryptAcquireContextW",
    "CryptEncrypt",
    "CryptGenKey",
    "BCryptEncrypt",
    # network
    "URLDownloadToFileW",
    "InternetOpenUrlW",
    "WinHttpSendRequest",
    "connect",
    "send",
    "recv",
    # anti-analysis
    "IsDebuggerPresent",
    "CheckRemoteDebuggerPresent",
    "NtQueryInformationProcess",
    "NtQuerySystemInformation",
})
