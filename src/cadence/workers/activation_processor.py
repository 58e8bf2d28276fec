"""Activation Processor: drains batch enrollment requests into members and step-0 messages.

Each activation is claimed under a lease and processed one target at a time.
After every target the cursor is checkpointed with a write conditional on the
claim token and the expected cursor value, so a crash resumes at the first
unprocessed target and a superseded worker stops at its next checkpoint.
"""

from __future__ import annotations

import logging

from cadence.core.exceptions import RecordNotFoundError
from cadence.core.protocols import ITargetDirectory
from cadence.models.base import new_claim_token, new_id
from cadence.models.pipeline import (
    ActivationStatus,
    SequenceActivation,
    SequenceMember,
    SkipReason,
)
from cadence.models.results import RunResult
from cadence.models.sequence import Sequence, SequenceStatus
from cadence.workers.base import BaseWorker
from cadence.workers.enrollment import MANUAL_TASK_STEP, ensure_step_message

logger = logging.getLogger(__name__)

ALREADY_ENROLLED = "already enrolled"


class ActivationProcessor(BaseWorker):
    name = "activation"

    def __init__(self, *, targets: ITargetDirectory, **kwargs) -> None:
        super().__init__(**kwargs)
        self._targets = targets

    def run(self) -> RunResult:
        """Process up to ``max_activations_per_run`` pending or reclaimable activations.

        Only activations the worker can claim count toward the bound, so
        batches of paused sequences or live leases never hold back the ones
        queued behind them.
        """
        result = RunResult(worker=self.name)
        limits = self.limits
        sequences: dict[str, Sequence | None] = {}
        attempted = 0
        for status in (ActivationStatus.PENDING, ActivationStatus.PROCESSING):
            for activation in self._store.iter_activations(status, page_size=limits.page_size):
                reason = self._not_claimable(activation, sequences)
                if reason is not None:
                    result.skip(activation.id, reason)
                    continue
                if attempted >= limits.max_activations_per_run:
                    result.capped = True
                    break
                attempted += 1
                result.merge(self.process(activation.id, run_id=result.run_id))
            if result.capped:
                break
        logger.info(
            "Activation run enrolled %d, skipped %d, errors %d",
            result.created_or_sent_count, result.skipped_count, result.errors,
            extra={"worker": self.name, "run_id": result.run_id},
        )
        return result

    def _not_claimable(self, activation: SequenceActivation,
                       sequences: dict[str, Sequence | None]) -> str | None:
        """Why a listed activation cannot be claimed this tick, judged from the listed record."""
        if activation.sequence_id not in sequences:
            sequences[activation.sequence_id] = self._store.get_sequence(activation.sequence_id)
        sequence = sequences[activation.sequence_id]
        if sequence is not None and sequence.status == SequenceStatus.PAUSED:
            return "sequence paused"
        if activation.status == ActivationStatus.PROCESSING and activation.claim_token is not None:
            lease = activation.lease_expires_at
            if not self.limits.reclaim_expired_leases or (lease is not None and lease >= self.now()):
                return "claimed by another worker"
        return None

    def process(self, activation_id: str, run_id: str | None = None) -> RunResult:
        """Claim one activation and enroll up to ``targets_per_activation_run`` of its targets.

        Raises:
            RecordNotFoundError: if the activation does not exist.
        """
        result = RunResult(worker=self.name, run_id=run_id or new_id("run"))
        log_extra = {"worker": self.name, "run_id": result.run_id, "activation_id": activation_id}

        activation = self._store.get_activation(activation_id)
        if activation is None:
            raise RecordNotFoundError("SequenceActivation", activation_id)
        if activation.status == ActivationStatus.COMPLETED:
            result.skip(activation_id, "activation already completed")
            return result
        if activation.status == ActivationStatus.FAILED:
            result.skip(activation_id, "activation failed")
            return result

        sequence = self._store.get_sequence(activation.sequence_id)
        if sequence is not None and sequence.status == SequenceStatus.PAUSED:
            result.skip(activation_id, "sequence paused")
            return result

        token = new_claim_token()
        now = self.now()
        lease_seconds = self.limits.activation_lease_seconds
        if not self._store.claim_activation(
            activation_id, token=token, now=now, lease_until=self.lease_until(now, lease_seconds),
            reclaim_expired=self.limits.reclaim_expired_leases,
        ):
            result.skip(activation_id, "claimed by another worker")
            return result

        if sequence is None or sequence.status == SequenceStatus.ARCHIVED:
            reason = "sequence not found" if sequence is None else "sequence archived"
            self._store.finish_activation(activation_id, token=token, status=ActivationStatus.FAILED,
                                          now=self.now(), error=reason)
            logger.warning("Activation %s failed: %s", activation_id, reason, extra=log_extra)
            self.emit("activation.failed", {"activationId": activation_id,
                                            "sequenceId": activation.sequence_id, "error": reason})
            result.skip(activation_id, reason)
            return result

        # Re-read after claiming: the cursor may have moved since the listing.
        activation = self._store.get_activation(activation_id)
        cursor = activation.processed_count
        budget = self.limits.targets_per_activation_run
        logger.info("Claimed activation %s at %d/%d", activation_id, cursor,
                    len(activation.target_ids), extra=log_extra)

        for target_id in activation.remaining[:budget]:
            try:
                members, messages, reason = self._enroll(activation, sequence, target_id)
            except Exception as exc:
                logger.exception("Enrollment of %s failed", target_id,
                                 extra={**log_extra, "target_id": target_id})
                result.errors += 1
                members, messages, reason = 0, 0, f"enrollment error: {exc}"

            now = self.now()
            if not self._store.checkpoint_activation(
                activation_id, token=token, expected_count=cursor, now=now,
                lease_until=self.lease_until(now, lease_seconds),
                skip=SkipReason(record_id=target_id, reason=reason) if reason else None,
                members_created=members, messages_created=messages,
            ):
                logger.warning("Lost lease on activation %s at %d", activation_id, cursor,
                               extra=log_extra)
                result.skip(activation_id, "lease lost")
                return result
            cursor += 1
            result.created_or_sent_count += members
            if reason:
                result.skip(target_id, reason)

        if cursor >= len(activation.target_ids):
            self._store.finish_activation(activation_id, token=token,
                                          status=ActivationStatus.COMPLETED, now=self.now())
            done = self._store.get_activation(activation_id)
            logger.info("Activation %s completed", activation_id, extra=log_extra)
            self.emit("activation.completed", {
                "activationId": activation_id,
                "sequenceId": activation.sequence_id,
                "membersCreated": done.members_created if done else result.created_or_sent_count,
                "skipped": len(done.skipped) if done else result.skipped_count,
            })
        else:
            self._store.release_activation(activation_id, token=token, now=self.now())
            result.capped = True
        return result

    def _enroll(self, activation: SequenceActivation, sequence: Sequence,
                target_id: str) -> tuple[int, int, str | None]:
        """Enroll one target. Returns (members created, messages created, skip reason)."""
        target = self._targets.get_target(target_id)
        if target is None:
            return 0, 0, "target not found"
        if not target.email:
            return 0, 0, "target has no email address"

        now = self.now()
        existing = self._store.find_active_member(sequence.id, target_id)
        if existing is not None:
            created = False
            # A crash between member and message creation leaves step 0 missing.
            if existing.activation_id == activation.id and existing.current_step_index == 0:
                created, _ = ensure_step_message(self._store, existing, sequence, 0,
                                                 recipient=target.email, now=now,
                                                 activation_id=activation.id)
            return 0, int(created), ALREADY_ENROLLED

        member = SequenceMember(
            id=new_id("mem"),
            sequence_id=sequence.id,
            target_id=target_id,
            owner_id=activation.owner_id,
            enrolled_at=now,
            updated_at=now,
            activation_id=activation.id,
        )
        if not self._store.create_member(member):
            return 0, 0, ALREADY_ENROLLED

        created, reason = ensure_step_message(self._store, member, sequence, 0,
                                              recipient=target.email, now=now,
                                              activation_id=activation.id)
        if reason == MANUAL_TASK_STEP:
            reason = None
        return 1, int(created), reason
