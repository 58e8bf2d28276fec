"""Enrollment endpoints: enqueue activations, remove members, complete manual steps."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status

from cadence.api.routes.deps import get_pipeline
from cadence.models.base import Record
from cadence.workers.runner import Pipeline

router = APIRouter(tags=["enrollment"])


class EnqueueRequest(Record):
    sequence_id: str
    target_ids: list[str]
    owner_id: Optional[str] = None
    process_now: bool = False


@router.post("/activations", status_code=status.HTTP_201_CREATED)
def enqueue_activation(request: EnqueueRequest, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    activation = pipeline.enrollment.enqueue_activation(
        request.sequence_id, request.target_ids, owner_id=request.owner_id,
    )
    body = {"activation": activation.model_dump(mode="json", by_alias=True)}
    if request.process_now:
        body["result"] = pipeline.processor.process(activation.id).model_dump(mode="json", by_alias=True)
    return body


@router.delete("/members/{member_id}")
def remove_member(member_id: str, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    return pipeline.enrollment.remove_member(member_id).model_dump(mode="json", by_alias=True)


@router.post("/members/{member_id}/steps/{step_index}/complete")
def complete_step(member_id: str, step_index: int, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    result = pipeline.enrollment.complete_manual_step(member_id, step_index)
    return result.model_dump(mode="json", by_alias=True)
