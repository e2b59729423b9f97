# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from malscope import __version__
from malscope.api.errors import register_error_handlers
from malscope.api.middleware import RequestMiddleware
from malscope.api.routes import health, scans
from malscope.core.config import Settings, get_settings
from malscope.core.logging import register_secrets, setup_logging
from malscope.scanner.engine import ScanEngine
from malscope.scanner.pipeline import AnalysisPipeline
from malscope.storage.base import ScanStore

logger = logging.getLogger("malscope.api.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    from malscope.analyzers import build_default_pipeline
    from malscope.storage.database import close_db, open_store

    settings: Settings = app.state.settings
    store: ScanStore = app.state.store or await open_store(settings)
    pipeline: AnalysisPipeline = app.state.pipeline or build_default_pipeline(settings)

    await pipeline.setup()
    app.state.engine = ScanEngine(store, pipeline, settings)
    logger.info("Scan engine started (store=%s)", type(store).__name__)

    try:
        yield
    finally:
        await app.state.engine.shutdown()
        app.state.engine = None
        await pipeline.teardown()
        await store.close()
        await close_db()


def create_app(
    settings: Settings | None = None,
    *,
    store: ScanStore | None = None,
    pipeline: AnalysisPipeline | None = None,
) -> FastAPI:
    """Build the API app.

    *store* and *pipeline* override what the settings would select, which is
    how tests inject in-memory storage and scripted analyzers.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)
    register_secrets(settings.api_keys)

    app = FastAPI(
        title="malscope",
        description="Malware scan lifecycle and analysis aggregation service",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.state.settings = settings
    app.state.store = store
    app.state.pipeline = pipeline
    app.state.engine = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(scans.router, prefix="/api/v1", tags=["scans"])
    app.add_middleware(RequestMiddleware)

    return app
