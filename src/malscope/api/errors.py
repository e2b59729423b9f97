# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Consistent JSON error responses for domain and HTTP errors."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from malscope.core.exceptions import (
    AlreadyInProgressError,
    AuthenticationRequiredError,
    ConfigurationError,
    ForbiddenError,
    InvalidTransitionError,
    MalscopeError,
    NotFoundError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger("malscope.api.errors")

# Most specific first; the first isinstance match wins.
STATUS_FOR_ERROR: list[tuple[type[MalscopeError], int]] = [
    (ValidationError, 422),
    (AuthenticationRequiredError, 401),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (AlreadyInProgressError, 409),
    (InvalidTransitionError, 409),
    (StorageError, 503),
    (ConfigurationError, 500),
]


def status_for(exc: MalscopeError) -> int:
    for error_type, status_code in STATUS_FOR_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _body(request: Request, status_code: int, detail: Any, **extra: Any) -> dict[str, Any]:
    return {
        "error": True,
        "status_code": status_code,
        "detail": detail,
        "timestamp": datetime.now(UTC).isoformat(),
        "request_id": getattr(request.state, "request_id", None),
        **extra,
    }


def register_error_handlers(app: FastAPI) -> None:
    """Register standard error handlers on the app."""

    @app.exception_handler(MalscopeError)
    async def domain_exception_handler(request: Request, exc: MalscopeError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content=_body(request, status_code, str(exc), error_type=type(exc).__name__),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_body(request, exc.status_code, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=_body(request, 422, "Validation error", errors=exc.errors()),
        )
