# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""JSON output formatter."""

from __future__ import annotations

import json

from malscope.models.scan import Scan


def format_json(scan: Scan) -> str:
    """Return the full scan record as formatted JSON."""
    return scan.model_dump_json(indent=2)


def format_json_summary(scans: list[Scan]) -> str:
    """Return a compact JSON list without analysis payloads."""
    data = [
        {
            "scan_id": s.scan_id,
            "file_name": s.file_name,
            "file_hash": s.file_hash,
            "status": s.status_label,
            "threat_level": s.threat_level,
            "malware_family": s.malware_family,
            "confidence": s.confidence,
            "created_at": s.created_at.isoformat(),
        }
        for s in scans
    ]
    return json.dumps(data, indent=2)
