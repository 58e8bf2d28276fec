"""Approval endpoints consumed by the review UI."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends

from cadence.api.routes.deps import get_pipeline
from cadence.models.base import Record
from cadence.models.pipeline import MessageContent
from cadence.workers.runner import Pipeline

router = APIRouter(prefix="/messages", tags=["messages"])


class ApproveRequest(Record):
    content: Optional[MessageContent] = None
    scheduled_send_time: Optional[datetime] = None
    approved_by: Optional[str] = None


@router.get("/pending-approval")
def pending_approval(owner_id: Optional[str] = None, sequence_id: Optional[str] = None,
                     limit: int = 100, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    messages = pipeline.approval.list_pending(owner_id=owner_id, sequence_id=sequence_id, limit=limit)
    return {
        "count": len(messages),
        "messages": [m.model_dump(mode="json", by_alias=True) for m in messages],
    }


@router.post("/{message_id}/approve")
def approve(message_id: str, request: ApproveRequest | None = None,
            pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    request = request or ApproveRequest()
    message = pipeline.approval.approve(
        message_id,
        edited_content=request.content,
        new_send_time=request.scheduled_send_time,
        approved_by=request.approved_by,
    )
    return message.model_dump(mode="json", by_alias=True)
