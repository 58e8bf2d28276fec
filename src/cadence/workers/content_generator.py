"""Content Generator: drafts content for messages awaiting generation.

A message is claimed by moving it ``not_generated -> generating`` under a
lease, which also bumps its attempt counter. Success stores the draft and
moves it to ``pending_approval``. Failure reverts it to ``not_generated``
with the error recorded, and once ``max_generation_attempts`` is reached the
message is left for an operator and reported by diagnostics.
"""

from __future__ import annotations

import logging

from cadence.core.protocols import IModelProvider, ITargetDirectory
from cadence.models.base import new_claim_token
from cadence.models.pipeline import MemberStatus, Message, MessageStatus
from cadence.models.results import RunResult
from cadence.models.sequence import Sequence, SequenceStatus
from cadence.workers.base import BaseWorker
from cadence.workers.composer import build_prompt, parse_draft

logger = logging.getLogger(__name__)

ATTEMPTS_EXHAUSTED = "generation attempts exhausted"


class ContentGenerator(BaseWorker):
    name = "generation"

    def __init__(self, *, model: IModelProvider, targets: ITargetDirectory, sweeper=None,
                 **kwargs) -> None:
        super().__init__(**kwargs)
        self._model = model
        self._targets = targets
        self._sweeper = sweeper

    def run(self) -> RunResult:
        result = RunResult(worker=self.name)
        limits = self.limits
        if self._sweeper is not None and limits.sweep_before_generation:
            swept = self._sweeper.run()
            if swept.reset_messages:
                logger.info("Reset %d stale generating messages", len(swept.reset_messages),
                            extra={"worker": self.name, "run_id": result.run_id})

        # ineligible rows stay not_generated, so only claims count toward the budget
        sequences: dict[str, Sequence | None] = {}
        claimed = 0
        for message in self._store.iter_messages(MessageStatus.NOT_GENERATED, page_size=limits.page_size):
            if claimed >= limits.max_messages_per_run:
                result.capped = True
                break
            if self._generate_one(message, result, sequences):
                claimed += 1

        logger.info(
            "Generation run drafted %d, skipped %d, errors %d",
            result.created_or_sent_count, result.skipped_count, result.errors,
            extra={"worker": self.name, "run_id": result.run_id},
        )
        return result

    def _generate_one(self, message: Message, result: RunResult,
                      sequences: dict[str, Sequence | None]) -> bool:
        """Draft one message. Returns whether it was claimed."""
        log_extra = {"worker": self.name, "run_id": result.run_id, "message_id": message.id}
        limits = self.limits

        if message.generation_attempts >= limits.max_generation_attempts:
            result.skip(message.id, ATTEMPTS_EXHAUSTED)
            return False
        if message.sequence_id not in sequences:
            sequences[message.sequence_id] = self._store.get_sequence(message.sequence_id)
        sequence = sequences[message.sequence_id]
        if sequence is None or sequence.status != SequenceStatus.ACTIVE:
            result.skip(message.id, "sequence not active")
            return False
        member = self._store.get_member(message.member_id)
        if member is None or member.status != MemberStatus.ACTIVE:
            result.skip(message.id, "member not active")
            return False

        token = new_claim_token()
        now = self.now()
        attempts = message.generation_attempts + 1
        if not self._store.transition_message(
            message.id, from_status=MessageStatus.NOT_GENERATED, to_status=MessageStatus.GENERATING,
            now=now, new_token=token,
            lease_until=self.lease_until(now, limits.generation_lease_seconds),
            updates={"generation_attempts": attempts},
        ):
            result.skip(message.id, "claimed by another worker")
            return False

        try:
            target = self._targets.get_target(message.target_id)
            previous = [
                prior for prior in (
                    self._store.get_step_message(message.member_id, i)
                    for i in range(message.step_index)
                ) if prior is not None
            ]
            draft = self._model.chat(build_prompt(message, target, previous))
            content = parse_draft(draft)
        except Exception as exc:
            logger.warning("Generation failed for %s (attempt %d): %s", message.id, attempts, exc,
                           extra=log_extra)
            self._store.transition_message(
                message.id, from_status=MessageStatus.GENERATING,
                to_status=MessageStatus.NOT_GENERATED, now=self.now(), expected_token=token,
                updates={"last_error": str(exc)[:500]},
            )
            result.errors += 1
            reason = ATTEMPTS_EXHAUSTED if attempts >= limits.max_generation_attempts else "generation failed"
            result.skip(message.id, reason)
            return True

        if not self._store.transition_message(
            message.id, from_status=MessageStatus.GENERATING, to_status=MessageStatus.PENDING_APPROVAL,
            now=self.now(), expected_token=token,
            updates={"content": content, "generated_at": self.now(), "last_error": ""},
        ):
            logger.warning("Lost generation lease on %s", message.id, extra=log_extra)
            result.skip(message.id, "lease lost")
            return True

        result.created_or_sent_count += 1
        logger.info("Drafted message %s", message.id, extra=log_extra)
        self.emit("message.generated", {
            "messageId": message.id,
            "memberId": message.member_id,
            "sequenceId": message.sequence_id,
            "ownerId": message.owner_id,
        })
        return True
