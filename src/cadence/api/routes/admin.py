"""Operator endpoints: worker triggers, backfill, sweep and diagnostics."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from cadence.api.routes.deps import get_pipeline
from cadence.models.base import Record
from cadence.workers.runner import Pipeline, run_worker

router = APIRouter(tags=["admin"])


class BackfillRequest(Record):
    dry_run: bool = True
    force: bool = False
    sequence_id: Optional[str] = None
    member_ids: Optional[list[str]] = None


def _dump(result: Record) -> dict:
    return result.model_dump(mode="json", by_alias=True)


@router.post("/workers/{name}/run")
def trigger_worker(name: str, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    """Run one bounded pass of a worker, as the scheduler would."""
    return _dump(run_worker(name, pipeline))


@router.post("/activations/{activation_id}/process")
def process_activation(activation_id: str, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    return _dump(pipeline.processor.process(activation_id))


@router.post("/backfill")
def backfill(request: BackfillRequest, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    return _dump(pipeline.backfill.run(
        dry_run=request.dry_run,
        force=request.force,
        sequence_id=request.sequence_id,
        member_ids=request.member_ids,
    ))


@router.post("/sweep")
def sweep(pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    return _dump(pipeline.sweeper.sweep_stale_claims())


@router.get("/diagnostics")
def diagnostics(sequence_id: Optional[str] = None, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    return _dump(pipeline.diagnostics.snapshot(sequence_id))
