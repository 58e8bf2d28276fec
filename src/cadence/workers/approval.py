"""Approval Gate: the human-in-the-loop transition from ``pending_approval`` to ``approved``."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from cadence.core.exceptions import (
    ClaimConflictError,
    InvalidContentError,
    InvalidTransitionError,
    RecordNotFoundError,
)
from cadence.models.pipeline import Message, MessageContent, MessageStatus
from cadence.workers.base import BaseWorker
from cadence.workers.composer import to_html

logger = logging.getLogger(__name__)


class ApprovalGate(BaseWorker):
    name = "approval"

    def list_pending(self, owner_id: str | None = None, sequence_id: str | None = None,
                     limit: int = 100) -> list[Message]:
        pending: list[Message] = []
        for message in self._store.iter_messages(
            MessageStatus.PENDING_APPROVAL, page_size=self.limits.page_size,
            max_pages=self.limits.max_pages,
        ):
            if owner_id and message.owner_id != owner_id:
                continue
            if sequence_id and message.sequence_id != sequence_id:
                continue
            pending.append(message)
            if len(pending) >= limit:
                break
        return pending

    def approve(self, message_id: str, edited_content: MessageContent | None = None,
                new_send_time: datetime | None = None, approved_by: str | None = None) -> Message:
        """Approve a drafted message, optionally overwriting its content and send time.

        Raises:
            RecordNotFoundError: unknown message id.
            InvalidTransitionError: the message is not awaiting approval.
            InvalidContentError: the edited content has an empty subject or body.
            ClaimConflictError: the message changed status while being approved.
        """
        message = self._store.get_message(message_id)
        if message is None:
            raise RecordNotFoundError("Message", message_id)
        if message.status != MessageStatus.PENDING_APPROVAL:
            raise InvalidTransitionError("Message", message.status, MessageStatus.APPROVED)

        now = self.now()
        updates: dict = {"approved_at": now, "approved_by": approved_by}
        if edited_content is not None:
            if not edited_content.subject.strip() or not edited_content.body.strip():
                raise InvalidContentError("Approved content needs a subject and a body")
            if not edited_content.html:
                edited_content = edited_content.model_copy(update={"html": to_html(edited_content.body)})
            updates["content"] = edited_content
        elif message.content is None:
            raise InvalidContentError(f"Message {message_id!r} has no content to approve")
        if new_send_time is not None:
            if new_send_time.tzinfo is None:
                new_send_time = new_send_time.replace(tzinfo=timezone.utc)
            updates["scheduled_send_time"] = new_send_time

        if not self._store.transition_message(
            message_id, from_status=MessageStatus.PENDING_APPROVAL, to_status=MessageStatus.APPROVED,
            now=now, updates=updates,
        ):
            raise ClaimConflictError(message_id, f"Message {message_id!r} changed while approving")

        logger.info("Approved message %s", message_id, extra={"message_id": message_id})
        self.emit("message.approved", {
            "messageId": message_id,
            "memberId": message.member_id,
            "sequenceId": message.sequence_id,
            "approvedBy": approved_by,
        })
        return self._store.get_message(message_id)
