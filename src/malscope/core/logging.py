# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Structured logging for scan lifecycle events.

Every record emitted under the ``malscope`` logger tree can carry scan
context through ``extra=``; the JSON formatter lifts those attributes
into top-level keys. Credentials are masked in both output formats,
including any API keys the service was configured with.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from collections.abc import Iterable
from typing import IO, Any

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

REDACT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(Bearer\s+[a-zA-Z0-9\-._~+/]{10})[a-zA-Z0-9\-._~+/]*"),
    re.compile(r"(AKIA[A-Z0-9]{4})[A-Z0-9]{12}"),
    re.compile(r"(ghp_[A-Za-z0-9]{4})[A-Za-z0-9_]{32,}"),
    re.compile(r"((?:password|passwd|pwd)=)[^\s&;]+", re.IGNORECASE),
]

# Extra attributes copied from ``logger.info(..., extra={...})`` into JSON output.
CONTEXT_FIELDS = ("scan_id", "owner_id", "phase", "status", "request_id", "duration_ms")

_configured_secrets: list[str] = []


def register_secrets(secrets: Iterable[str]) -> None:
    """Mask these literal values (e.g. configured API keys) wherever they are logged."""
    for secret in secrets:
        if secret and secret not in _configured_secrets:
            _configured_secrets.append(secret)


def redact_sensitive(text: str) -> str:
    for secret in _configured_secrets:
        text = text.replace(secret, "[REDACTED]")
    for pattern in REDACT_PATTERNS:
        text = pattern.sub(r"\1[REDACTED]", text)
    return text


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_sensitive(record.getMessage()),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value if isinstance(value, int | float) else str(value)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = redact_sensitive(
                f"{type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
            )
        return json.dumps(entry)


class TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        scan_id = getattr(record, "scan_id", None)
        if scan_id is not None and str(scan_id) not in text:
            text = f"{text} [scan={scan_id}]"
        return redact_sensitive(text)


def setup_logging(
    level: str = "INFO",
    fmt: str = "json",
    stream: IO[str] | None = None,
) -> None:
    """Install a single handler on the ``malscope`` logger.

    Calling it again replaces the previous handler, so the CLI callback and
    the API factory can both configure logging without duplicating output.
    """
    root = logging.getLogger("malscope")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if fmt == "json" else TextFormatter(TEXT_FORMAT))
    root.addHandler(handler)
