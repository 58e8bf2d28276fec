"""Dispatcher: sends approved messages whose scheduled time has elapsed.

Delivery is gated by a lease on the ``approved`` message; only the holder of
the lease calls the delivery service, and ``approved -> sent`` is conditional
on the same token. A successful send advances the member's cursor and
prepares the next step's message.
"""

from __future__ import annotations

import logging

from cadence.core.protocols import IDeliveryService
from cadence.models.base import new_claim_token
from cadence.models.pipeline import MemberStatus, Message, MessageStatus
from cadence.models.results import RunResult
from cadence.models.sequence import Sequence, SequenceStatus
from cadence.workers.base import BaseWorker
from cadence.workers.enrollment import MANUAL_TASK_STEP, MESSAGE_EXISTS, advance_member_cursor

logger = logging.getLogger(__name__)


class Dispatcher(BaseWorker):
    name = "dispatch"

    def __init__(self, *, delivery: IDeliveryService, **kwargs) -> None:
        super().__init__(**kwargs)
        self._delivery = delivery

    def run(self) -> RunResult:
        result = RunResult(worker=self.name)
        limits = self.limits
        sequences: dict[str, Sequence | None] = {}
        leased = 0
        for message in self._store.iter_messages(
            MessageStatus.APPROVED, due_before=self.now(), page_size=limits.page_size,
        ):
            if leased >= limits.max_messages_per_run:
                result.capped = True
                break
            if self._dispatch_one(message, result, sequences):
                leased += 1
        logger.info(
            "Dispatch run sent %d, skipped %d, errors %d",
            result.created_or_sent_count, result.skipped_count, result.errors,
            extra={"worker": self.name, "run_id": result.run_id},
        )
        return result

    def _dispatch_one(self, listed: Message, result: RunResult,
                      sequences: dict[str, Sequence | None]) -> bool:
        """Deliver one message. Returns whether this worker took its lease."""
        log_extra = {"worker": self.name, "run_id": result.run_id, "message_id": listed.id}
        if listed.sequence_id not in sequences:
            sequences[listed.sequence_id] = self._store.get_sequence(listed.sequence_id)
        sequence = sequences[listed.sequence_id]
        if sequence is not None and sequence.status == SequenceStatus.PAUSED:
            result.skip(listed.id, "sequence paused")
            return False

        token = new_claim_token()
        now = self.now()
        if not self._store.lease_message(
            listed.id, status=MessageStatus.APPROVED, token=token, now=now,
            lease_until=self.lease_until(now, self.limits.dispatch_lease_seconds),
        ):
            result.skip(listed.id, "claimed by another worker")
            return False

        message = self._store.get_message(listed.id)
        member = self._store.get_member(message.member_id)
        if member is None or member.status != MemberStatus.ACTIVE:
            self._fail(message, token, "member not active", result)
            return True
        if sequence is None or sequence.status == SequenceStatus.ARCHIVED:
            self._fail(message, token, "sequence not active", result)
            return True
        if message.content is None or not message.to:
            self._fail(message, token, "no content" if message.content is None else "no recipient", result)
            return True

        try:
            delivery_id = self._delivery.send(
                to=message.to,
                subject=message.content.subject,
                body=message.content.body,
                html=message.content.html,
                metadata={
                    "messageId": message.id,
                    "sequenceId": message.sequence_id,
                    "memberId": message.member_id,
                },
            )
        except Exception as exc:
            result.errors += 1
            attempts = message.delivery_attempts + 1
            logger.warning("Delivery of %s failed (attempt %d): %s", message.id, attempts, exc,
                           extra=log_extra)
            if attempts >= self.limits.max_delivery_attempts:
                self._fail(message, token, f"delivery failed: {exc}"[:500], result,
                           delivery_attempts=attempts)
            else:
                self._store.release_message(
                    message.id, status=MessageStatus.APPROVED, token=token, now=self.now(),
                    updates={"delivery_attempts": attempts, "last_error": str(exc)[:500]},
                )
                result.skip(message.id, "delivery failed, will retry")
            return True

        now = self.now()
        if not self._store.transition_message(
            message.id, from_status=MessageStatus.APPROVED, to_status=MessageStatus.SENT,
            now=now, expected_token=token,
            updates={
                "sent_at": now,
                "delivery_id": delivery_id,
                "delivery_attempts": message.delivery_attempts + 1,
                "last_error": "",
            },
        ):
            logger.error("Message %s delivered as %s but its lease was lost", message.id,
                         delivery_id, extra=log_extra)
            result.errors += 1
            result.skip(message.id, "lease lost after send")
            return True

        result.created_or_sent_count += 1
        logger.info("Sent message %s", message.id, extra=log_extra)
        self.emit("message.sent", {
            "messageId": message.id,
            "memberId": message.member_id,
            "sequenceId": message.sequence_id,
            "deliveryId": delivery_id,
        })

        advanced, completed, _, reason = advance_member_cursor(
            self._store, member, sequence, message.step_index, recipient=message.to, now=now,
        )
        if not advanced:
            logger.warning("Member %s %s", member.id, reason,
                           extra={**log_extra, "member_id": member.id})
        elif completed:
            self.emit("member.completed", {"memberId": member.id, "sequenceId": sequence.id})
        elif reason not in (None, MANUAL_TASK_STEP, MESSAGE_EXISTS):
            logger.warning("Next step for member %s not prepared: %s", member.id, reason,
                           extra={**log_extra, "member_id": member.id})
        return True

    def _fail(self, message: Message, token: str, reason: str, result: RunResult,
              delivery_attempts: int | None = None) -> None:
        now = self.now()
        updates = {"last_error": reason, "failed_at": now}
        if delivery_attempts is not None:
            updates["delivery_attempts"] = delivery_attempts
        if self._store.transition_message(
            message.id, from_status=MessageStatus.APPROVED, to_status=MessageStatus.FAILED,
            now=now, expected_token=token, updates=updates,
        ):
            self.emit("message.failed", {
                "messageId": message.id,
                "memberId": message.member_id,
                "sequenceId": message.sequence_id,
                "error": reason,
            })
        result.skip(message.id, reason)
