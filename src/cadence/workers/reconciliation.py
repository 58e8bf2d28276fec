"""Reconciliation (backfill): repairs members whose current step has no Message.

The regular workers never recreate missing records; drift from partial
writes or older releases is repaired here, explicitly, by an operator. A dry
run computes exactly the plan a real run executes.
"""

from __future__ import annotations

import logging
from typing import Iterator, NamedTuple

from cadence.core.protocols import ICacheBackend, ITargetDirectory
from cadence.models.pipeline import MemberStatus, MessageStatus, SequenceMember, message_id_for
from cadence.models.results import BackfillResult
from cadence.models.sequence import Sequence
from cadence.workers.base import BaseWorker
from cadence.workers.enrollment import MESSAGE_EXISTS, build_step_message, step_skip_reason

logger = logging.getLogger(__name__)


class PlannedMessage(NamedTuple):
    member: SequenceMember
    sequence: Sequence
    step_index: int
    recipient: str
    status: MessageStatus


class BackfillTool(BaseWorker):
    name = "backfill"

    def __init__(self, *, cache: ICacheBackend, targets: ITargetDirectory, **kwargs) -> None:
        super().__init__(**kwargs)
        self._cache = cache
        self._targets = targets

    def run(self, dry_run: bool = True, force: bool = False, sequence_id: str | None = None,
            member_ids: list[str] | None = None) -> BackfillResult:
        """Plan (and unless ``dry_run``, create) the missing current-step messages.

        With ``force`` the earlier auto-message steps of each member are
        backfilled as well, recorded as already ``sent`` so they are never
        delivered again.
        """
        result = BackfillResult(dry_run=dry_run, force=force)
        plan = self._plan(result, force, sequence_id, member_ids)
        result.to_create = len(plan)
        result.planned_message_ids = [message_id_for(p.member.id, p.step_index) for p in plan]

        if dry_run:
            logger.info("Backfill dry run: %d to create, %d skipped", result.to_create,
                        result.skipped_count, extra={"worker": self.name, "run_id": result.run_id})
            return result

        now = self.now()
        owners: set[str] = set()
        sequences: set[str] = set()
        for item in plan:
            message = build_step_message(
                item.member, item.sequence, item.step_index, recipient=item.recipient, now=now,
                status=item.status, backfilled=True,
            )
            if item.status == MessageStatus.SENT:
                message = message.model_copy(update={"sent_at": now})
            if self._store.create_message(message):
                result.created += 1
                owners.add(item.member.owner_id)
                sequences.add(item.sequence.id)
            else:
                result.skip(message.id, MESSAGE_EXISTS)

        for key in [f"ui:messages:{o}" for o in sorted(owners)] + [f"ui:members:{s}" for s in sorted(sequences)]:
            self._cache.delete(key)
            result.invalidated_cache_keys.append(key)

        logger.info("Backfill created %d of %d planned", result.created, result.to_create,
                    extra={"worker": self.name, "run_id": result.run_id})
        self.emit("backfill.completed", {
            "runId": result.run_id,
            "created": result.created,
            "skipped": result.skipped_count,
            "force": force,
        })
        return result

    def _members(self, sequence_id: str | None, member_ids: list[str] | None) -> Iterator[SequenceMember]:
        if member_ids:
            for member_id in member_ids:
                member = self._store.get_member(member_id)
                if member is not None:
                    yield member
            return
        yield from self._store.iter_members(
            MemberStatus.ACTIVE, page_size=self.limits.page_size, max_pages=None,
        )

    def _plan(self, result: BackfillResult, force: bool, sequence_id: str | None,
              member_ids: list[str] | None) -> list[PlannedMessage]:
        plan: list[PlannedMessage] = []
        sequences: dict[str, Sequence | None] = {}
        for member in self._members(sequence_id, member_ids):
            if sequence_id and member.sequence_id != sequence_id:
                continue
            if member.status != MemberStatus.ACTIVE:
                result.skip(member.id, f"member {member.status}")
                continue
            if member.sequence_id not in sequences:
                sequences[member.sequence_id] = self._store.get_sequence(member.sequence_id)
            sequence = sequences[member.sequence_id]
            if sequence is None or not sequence.steps:
                result.skip(member.id, "sequence not found or has no steps")
                continue
            current = member.current_step_index
            if current >= len(sequence.steps):
                result.skip(member.id, "cursor past last step")
                continue
            target = self._targets.get_target(member.target_id)
            if target is None or not target.email:
                result.skip(member.id, "target has no email address")
                continue

            steps = range(current + 1) if force else [current]
            for index in steps:
                reason = step_skip_reason(sequence, index)
                message_id = message_id_for(member.id, index)
                if reason is None and self._store.get_step_message(member.id, index) is not None:
                    reason = MESSAGE_EXISTS
                if reason is not None:
                    # only the current step reports why it was not planned
                    if index == current:
                        result.skip(message_id, reason)
                    continue
                status = MessageStatus.NOT_GENERATED if index == current else MessageStatus.SENT
                plan.append(PlannedMessage(member, sequence, index, target.email, status))
        return plan
