"""Request-scoped access to the wired pipeline."""

from __future__ import annotations

from fastapi import Request

from cadence.workers.runner import Pipeline


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline
