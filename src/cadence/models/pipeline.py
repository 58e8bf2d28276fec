"""Activation, membership, and message records with their lifecycle enums."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import Field, model_validator

from cadence.models.base import SCHEMA_VERSION, Record


class ActivationStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MemberStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    REMOVED = "removed"


class MessageStatus(StrEnum):
    NOT_GENERATED = "not_generated"
    GENERATING = "generating"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    SENT = "sent"
    FAILED = "failed"


class SkipReason(Record):
    """Why a unit of work was not acted on. Every skip carries one."""

    record_id: str
    reason: str


class SequenceActivation(Record):
    """A batch enrollment request with a resumable progress cursor."""

    id: str
    sequence_id: str
    target_ids: list[str] = Field(default_factory=list)
    owner_id: str = "unassigned"
    status: ActivationStatus = ActivationStatus.PENDING
    processed_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None
    processing_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    claim_token: Optional[str] = None
    lease_expires_at: Optional[datetime] = None
    attempt_count: int = 0
    members_created: int = 0
    messages_created: int = 0
    skipped: list[SkipReason] = Field(default_factory=list)
    error_message: str = ""
    schema_version: int = SCHEMA_VERSION

    @model_validator(mode="after")
    def _cursor_within_batch(self) -> "SequenceActivation":
        if not 0 <= self.processed_count <= len(self.target_ids):
            raise ValueError(
                f"processedCount {self.processed_count} outside 0..{len(self.target_ids)}"
            )
        return self

    @property
    def remaining(self) -> list[str]:
        return self.target_ids[self.processed_count:]

    @property
    def is_done(self) -> bool:
        return self.processed_count >= len(self.target_ids)


class SequenceMember(Record):
    """One enrollment of a target into a sequence, with its step cursor."""

    id: str
    sequence_id: str
    target_id: str
    owner_id: str = "unassigned"
    current_step_index: int = 0
    status: MemberStatus = MemberStatus.ACTIVE
    enrolled_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    activation_id: Optional[str] = None
    schema_version: int = SCHEMA_VERSION


class MessageContent(Record):
    subject: str
    body: str
    html: str = ""


class Message(Record):
    """One scheduled communication artifact, unique per (member, step)."""

    id: str
    sequence_id: str
    member_id: str
    target_id: str = ""
    step_index: int
    status: MessageStatus = MessageStatus.NOT_GENERATED
    scheduled_send_time: datetime
    content: Optional[MessageContent] = None
    owner_id: str = "unassigned"
    to: str = ""
    prompt: str = ""
    total_steps: int = 1
    activation_id: Optional[str] = None

    claim_token: Optional[str] = None
    lease_expires_at: Optional[datetime] = None
    generation_attempts: int = 0
    delivery_attempts: int = 0
    last_error: str = ""
    delivery_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    generated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    sent_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    backfilled: bool = False
    schema_version: int = SCHEMA_VERSION


def message_id_for(member_id: str, step_index: int) -> str:
    """Deterministic message id: the (member, step) dedup key."""
    return f"msg-{member_id}-{step_index:04d}"
