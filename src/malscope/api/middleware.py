# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Per-request correlation ID and access log."""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("malscope.api.access")

REQUEST_ID_HEADER = "X-Request-ID"
# Probes are polled constantly; keep them out of the INFO access log.
QUIET_PATHS = frozenset({"/api/v1/health", "/api/v1/ready"})


class RequestMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID, echo it back, and log the outcome."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.monotonic()

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        elapsed = round((time.monotonic() - started) * 1000, 1)
        path = request.url.path
        logger.log(
            logging.DEBUG if path in QUIET_PATHS else logging.INFO,
            "%s %s -> %d",
            request.method,
            path,
            response.status_code,
            extra={
                "request_id": request_id,
                "owner_id": request.headers.get("X-Owner-ID"),
                "duration_ms": elapsed,
            },
        )
        return response
