"""Enrollment: step-artifact creation shared by every creator, plus the enrollment-side operations.

``ensure_step_message`` is the single create path for Messages. The
Activation Processor uses it for step 0, the Dispatcher and manual-task
completion for the next step after a cursor advance, and the backfill tool
for repairs. Creation is conditional on the deterministic (member, step) key,
so racing creators converge on one record.
"""

from __future__ import annotations

import logging

from cadence.core.exceptions import (
    ClaimConflictError,
    RecordNotFoundError,
    SequenceInactiveError,
    SequenceNotFoundError,
)
from cadence.core.protocols import ITargetDirectory
from cadence.models.base import new_id
from cadence.models.normalize import normalize_owner
from cadence.models.pipeline import (
    MemberStatus,
    Message,
    MessageStatus,
    SequenceActivation,
    SequenceMember,
    message_id_for,
)
from cadence.models.results import RunResult
from cadence.models.sequence import Sequence, SequenceStatus
from cadence.workers.base import BaseWorker

logger = logging.getLogger(__name__)

NO_STEP_TEMPLATE = "no step template"
MANUAL_TASK_STEP = "manual task step has no message"
MESSAGE_EXISTS = "message already exists"


def step_skip_reason(sequence: Sequence, step_index: int) -> str | None:
    """Why step ``step_index`` of ``sequence`` gets no Message, or ``None`` if it should have one."""
    step = sequence.step_at(step_index)
    if step is None:
        return NO_STEP_TEMPLATE
    if step.is_task:
        return MANUAL_TASK_STEP
    if not step.is_message:
        return f"unknown step type {step.step_type!r}"
    return None


def build_step_message(member: SequenceMember, sequence: Sequence, step_index: int, *,
                       recipient: str, now, status: MessageStatus = MessageStatus.NOT_GENERATED,
                       activation_id: str | None = None, backfilled: bool = False) -> Message:
    step = sequence.steps[step_index]
    return Message(
        id=message_id_for(member.id, step_index),
        sequence_id=sequence.id,
        member_id=member.id,
        target_id=member.target_id,
        step_index=step_index,
        status=status,
        scheduled_send_time=sequence.send_time_for(step_index, member.enrolled_at),
        owner_id=member.owner_id,
        to=recipient,
        prompt=step.prompt,
        total_steps=len(sequence.steps),
        activation_id=activation_id,
        created_at=now,
        updated_at=now,
        backfilled=backfilled,
    )


def ensure_step_message(store, member: SequenceMember, sequence: Sequence, step_index: int, *,
                        recipient: str, now, activation_id: str | None = None) -> tuple[bool, str | None]:
    """Create the Message for (member, step) if absent.

    Returns ``(created, reason)``; ``reason`` explains a non-creation.
    """
    reason = step_skip_reason(sequence, step_index)
    if reason is not None:
        return False, reason
    if store.get_step_message(member.id, step_index) is not None:
        return False, MESSAGE_EXISTS
    message = build_step_message(member, sequence, step_index, recipient=recipient, now=now,
                                 activation_id=activation_id)
    if not store.create_message(message):
        return False, MESSAGE_EXISTS
    logger.info("Created message %s for step %d", message.id, step_index,
                extra={"member_id": member.id, "sequence_id": sequence.id})
    return True, None


def advance_member_cursor(store, member: SequenceMember, sequence: Sequence, from_index: int, *,
                          recipient: str, now) -> tuple[bool, bool, bool, str | None]:
    """Move ``member`` past ``from_index`` and prepare the next step.

    Returns ``(advanced, completed, created, reason)``. Past the last step the
    member is completed and its enrollment guard released.
    """
    next_index = from_index + 1
    complete = next_index >= len(sequence.steps)
    if not store.advance_member(member.id, expected_index=from_index, now=now, complete=complete):
        return False, False, False, f"cursor not at step {from_index}"
    if complete:
        return True, True, False, None
    advanced = member.model_copy(update={"current_step_index": next_index})
    created, reason = ensure_step_message(store, advanced, sequence, next_index,
                                          recipient=recipient, now=now)
    return True, False, created, reason


class EnrollmentService(BaseWorker):
    """Enrollment-initiating and membership-changing operations called by the CRM UI."""

    name = "enrollment"

    def __init__(self, *, targets: ITargetDirectory, **kwargs) -> None:
        super().__init__(**kwargs)
        self._targets = targets

    def enqueue_activation(self, sequence_id: str, target_ids: list[str],
                           owner_id: str | None = None) -> SequenceActivation:
        """Write a ``pending`` batch enrollment for the Activation Processor to drain."""
        sequence = self._store.get_sequence(sequence_id)
        if sequence is None:
            raise SequenceNotFoundError(sequence_id)
        if sequence.status == SequenceStatus.ARCHIVED:
            raise SequenceInactiveError(sequence_id, sequence.status)

        unique = list(dict.fromkeys(t.strip() for t in target_ids if t and t.strip()))
        now = self.now()
        activation = SequenceActivation(
            id=new_id("act"),
            sequence_id=sequence_id,
            target_ids=unique,
            owner_id=normalize_owner(owner_id or sequence.owner_id),
            created_at=now,
            updated_at=now,
        )
        self._store.put_activation(activation)
        logger.info("Enqueued activation %s with %d targets", activation.id, len(unique),
                    extra={"activation_id": activation.id, "sequence_id": sequence_id})
        return activation

    def remove_member(self, member_id: str) -> SequenceMember:
        member = self._store.get_member(member_id)
        if member is None:
            raise RecordNotFoundError("SequenceMember", member_id)
        if not self._store.set_member_status(member_id, from_status=MemberStatus.ACTIVE,
                                             to_status=MemberStatus.REMOVED, now=self.now()):
            raise ClaimConflictError(member_id, f"Member {member_id!r} is {member.status}, not active")
        logger.info("Removed member %s from %s", member_id, member.sequence_id,
                    extra={"member_id": member_id, "sequence_id": member.sequence_id})
        return self._store.get_member(member_id)

    def complete_manual_step(self, member_id: str, step_index: int) -> RunResult:
        """Mark a manual-task step done, advance the cursor and create the next step's Message."""
        result = RunResult(worker=self.name)
        member = self._store.get_member(member_id)
        if member is None:
            raise RecordNotFoundError("SequenceMember", member_id)
        sequence = self._store.get_sequence(member.sequence_id)
        if sequence is None:
            raise SequenceNotFoundError(member.sequence_id)
        step = sequence.step_at(step_index)
        if step is None or not step.is_task:
            raise ClaimConflictError(member_id, f"Step {step_index} is not a manual task")

        target = self._targets.get_target(member.target_id)
        advanced, completed, created, reason = advance_member_cursor(
            self._store, member, sequence, step_index,
            recipient=target.email if target else "", now=self.now(),
        )
        if not advanced:
            raise ClaimConflictError(member_id, f"Member {member_id!r} {reason}")
        if completed:
            self.emit("member.completed", {"memberId": member_id, "sequenceId": sequence.id})
        elif created:
            result.created_or_sent_count += 1
        elif reason is not None and reason != MANUAL_TASK_STEP:
            result.skip(message_id_for(member_id, step_index + 1), reason)
        return result
