# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from malscope import __version__

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


class ReadyResponse(BaseModel):
    status: str
    database: str
    in_flight: int = 0


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", service="malscope", version=__version__)


@router.get("/ready", response_model=ReadyResponse)
async def ready(request: Request) -> ReadyResponse:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        return ReadyResponse(status="not_ready", database="engine not started")

    try:
        ok = await engine.store.ping()
    except Exception as exc:
        return ReadyResponse(status="not_ready", database=str(exc))
    if not ok:
        return ReadyResponse(status="not_ready", database="unreachable")
    return ReadyResponse(status="ready", database="connected", in_flight=len(engine.in_flight()))
