"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from cadence.api.routes.deps import get_pipeline
from cadence.workers.runner import Pipeline

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
def ready(pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    return {
        "status": "ready",
        "environment": pipeline.settings.environment,
        "workers": [
            pipeline.processor.health_check(),
            pipeline.generator.health_check(),
            pipeline.dispatcher.health_check(),
        ],
    }
