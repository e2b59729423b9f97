# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Scan submission, lookup and control endpoints."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from malscope.api.auth import get_engine, require_api_key, require_owner
from malscope.core.exceptions import ValidationError
from malscope.models.scan import Scan
from malscope.scanner.engine import ScanEngine

logger = logging.getLogger("malscope.api.scans")

router = APIRouter(dependencies=[Depends(require_api_key)])


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class ScanRequestBody(BaseModel):
    file_name: str = Field(description="Original name of the artifact")
    file_size: int = Field(description="Artifact size in bytes")


class CancelRequestBody(BaseModel):
    reason: str = "cancelled"


class ScanSummary(BaseModel):
    scan_id: str
    file_name: str
    file_size: int
    file_hash: str
    status: str
    threat_level: str
    malware_family: str | None
    confidence: float | None
    created_at: datetime
    completed_at: datetime | None


class ScanResponseBody(ScanSummary):
    owner_id: str
    static_analysis: dict[str, Any] | None
    dynamic_analysis: dict[str, Any] | None
    classification: dict[str, Any] | None
    failure_reason: str | None
    failure_kind: str | None
    scan_duration_ms: int | None
    started_at: datetime | None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _summary_fields(scan: Scan) -> dict[str, Any]:
    return {
        "scan_id": scan.scan_id,
        "file_name": scan.file_name,
        "file_size": scan.file_size,
        "file_hash": scan.file_hash,
        "status": scan.status_label,
        "threat_level": str(scan.threat_level),
        "malware_family": scan.malware_family,
        "confidence": scan.confidence,
        "created_at": scan.created_at,
        "completed_at": scan.completed_at,
    }


def _dump(model: BaseModel | None) -> dict[str, Any] | None:
    return None if model is None else model.model_dump(mode="json", by_alias=True)


def _scan_to_response(scan: Scan) -> ScanResponseBody:
    return ScanResponseBody(
        **_summary_fields(scan),
        owner_id=scan.owner_id,
        static_analysis=_dump(scan.static_analysis),
        dynamic_analysis=_dump(scan.dynamic_analysis),
        classification=_dump(scan.classification),
        failure_reason=scan.failure_reason,
        failure_kind=str(scan.failure_kind) if scan.failure_kind else None,
        scan_duration_ms=scan.scan_duration_ms,
        started_at=scan.started_at,
    )


async def _read_submission(request: Request) -> tuple[str, int, bytes | None]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            raise ValidationError("multipart submission requires a 'file' field")
        data = await upload.read()
        return upload.filename or "upload", len(data), data

    try:
        body = ScanRequestBody.model_validate(await request.json())
    except (ValueError, PydanticValidationError) as exc:
        raise ValidationError(f"Invalid scan request: {exc}") from exc
    return body.file_name, body.file_size, None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/scans", response_model=ScanResponseBody, status_code=202)
async def submit_scan(
    request: Request,
    owner: str = Depends(require_owner),
    engine: ScanEngine = Depends(get_engine),
) -> ScanResponseBody:
    """Submit an artifact (multipart ``file`` or JSON metadata) and start analysis."""
    file_name, file_size, content = await _read_submission(request)
    scan = await engine.submit(owner, file_name, file_size, content=content)
    await engine.start(scan.scan_id)
    return _scan_to_response(scan)


@router.get("/scans", response_model=list[ScanSummary])
async def list_scans(
    owner: str = Depends(require_owner),
    engine: ScanEngine = Depends(get_engine),
) -> list[ScanSummary]:
    """List the requester's scans, newest first."""
    scans = await engine.list_scans(owner)
    return [ScanSummary(**_summary_fields(s)) for s in scans]


@router.get("/scans/{scan_id}", response_model=ScanResponseBody)
async def get_scan(
    scan_id: str,
    owner: str = Depends(require_owner),
    engine: ScanEngine = Depends(get_engine),
) -> ScanResponseBody:
    scan = await engine.fetch(scan_id, owner)
    return _scan_to_response(scan)


@router.post("/scans/{scan_id}/run", response_model=ScanResponseBody)
async def run_scan(
    scan_id: str,
    owner: str = Depends(require_owner),
    engine: ScanEngine = Depends(get_engine),
) -> ScanResponseBody:
    """Run the scan to completion (or join the active run) and return the result."""
    await engine.fetch(scan_id, owner)
    scan = await engine.run(scan_id)
    return _scan_to_response(scan)


@router.post("/scans/{scan_id}/cancel", response_model=ScanResponseBody)
async def cancel_scan(
    scan_id: str,
    body: CancelRequestBody | None = None,
    owner: str = Depends(require_owner),
    engine: ScanEngine = Depends(get_engine),
) -> ScanResponseBody:
    reason = body.reason if body else "cancelled"
    scan = await engine.cancel(scan_id, owner, reason=reason)
    return _scan_to_response(scan)


@router.delete("/scans/{scan_id}", status_code=204)
async def delete_scan(
    scan_id: str,
    owner: str = Depends(require_owner),
    engine: ScanEngine = Depends(get_engine),
) -> Response:
    await engine.delete_scan(scan_id, owner)
    return Response(status_code=204)
