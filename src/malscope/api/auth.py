# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""API key gate and requester identity dependencies."""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from malscope.core.config import Settings
from malscope.core.exceptions import AuthenticationRequiredError
from malscope.scanner.engine import ScanEngine

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


def get_engine(request: Request) -> ScanEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Scan engine not started")
    return engine  # type: ignore[no-any-return]


async def require_api_key(
    request: Request,
    api_key: str | None = Security(_api_key_header),
) -> str:
    """Validate the X-API-Key header.

    If no API keys are configured in settings, the gate is open. Otherwise
    the provided key must match one of the configured keys.
    """
    settings = get_app_settings(request)

    if not settings.api_keys:
        return "anonymous"

    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key header")

    if api_key not in settings.api_keys:
        raise HTTPException(status_code=403, detail="Invalid API key")

    return api_key


async def require_owner(
    request: Request,
    x_owner_id: str | None = Header(default=None, alias="X-Owner-ID"),
) -> str:
    """Identity of the requester, established by an upstream identity provider.

    Falls back to ``MALSCOPE_DEFAULT_OWNER`` for single-user deployments.
    """
    owner = x_owner_id or get_app_settings(request).default_owner
    if not owner or not owner.strip():
        raise AuthenticationRequiredError("X-Owner-ID header is required")
    return owner.strip()
