"""FastAPI application with lifespan, error mapping and router mounting."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cadence.api.routes import admin, enrollment, health, messages
from cadence.core.config import AppSettings
from cadence.core.exceptions import (
    CadenceError,
    ClaimConflictError,
    InvalidContentError,
    InvalidTransitionError,
    RecordNotFoundError,
    SequenceInactiveError,
)
from cadence.core.logging import setup_logging
from cadence.workers.runner import Pipeline, build_pipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize and tear down application resources."""
    if getattr(app.state, "pipeline", None) is None:
        settings = AppSettings()
        setup_logging(settings.log_level, settings.log_format)
        app.state.pipeline = build_pipeline(settings)
    app.state.settings = app.state.pipeline.settings
    yield


def _error(status: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": type(exc).__name__, "detail": str(exc)})


def create_app(pipeline: Pipeline | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Cadence Sequence Automation",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    @app.exception_handler(RecordNotFoundError)
    async def not_found(request: Request, exc: RecordNotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(InvalidTransitionError)
    @app.exception_handler(ClaimConflictError)
    @app.exception_handler(SequenceInactiveError)
    async def conflict(request: Request, exc: CadenceError) -> JSONResponse:
        return _error(409, exc)

    @app.exception_handler(InvalidContentError)
    @app.exception_handler(ValueError)
    async def unprocessable(request: Request, exc: Exception) -> JSONResponse:
        return _error(422, exc)

    @app.exception_handler(CadenceError)
    async def internal(request: Request, exc: CadenceError) -> JSONResponse:
        logger.error("Unhandled pipeline error on %s", request.url.path, exc_info=exc)
        return _error(500, exc)

    app.include_router(health.router)
    app.include_router(admin.router, prefix="/admin")
    app.include_router(messages.router)
    app.include_router(enrollment.router)
    return app
