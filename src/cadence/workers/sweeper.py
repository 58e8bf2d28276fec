"""Stale-claim sweep: recovers generation claims abandoned by a dead worker."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from cadence.models.pipeline import (
    ActivationStatus,
    Message,
    MessageStatus,
    SequenceActivation,
    SkipReason,
)
from cadence.models.results import StaleRecord, SweepResult
from cadence.workers.base import BaseWorker

logger = logging.getLogger(__name__)


def age_seconds(now: datetime, since: datetime | None) -> int:
    return int((now - since).total_seconds()) if since is not None else 0


def is_stale_generating(message: Message, now: datetime, lease_seconds: int) -> bool:
    if message.lease_expires_at is not None:
        return message.lease_expires_at < now
    since = message.updated_at or message.created_at
    return since is None or since < now - timedelta(seconds=lease_seconds)


def is_stale_activation(activation: SequenceActivation, now: datetime, stale_seconds: int) -> bool:
    # a released batch holds no claim; the next processor tick resumes it
    if activation.claim_token is None:
        return False
    if activation.lease_expires_at is not None and activation.lease_expires_at < now:
        return True
    since = activation.updated_at or activation.created_at
    return since < now - timedelta(seconds=stale_seconds)


class StaleClaimSweeper(BaseWorker):
    """Reverts expired ``generating`` claims and reports stuck activations.

    Activations with an expired lease are re-claimed by the Activation
    Processor itself, so they are only reported here.
    """

    name = "sweep"

    def run(self) -> SweepResult:
        return self.sweep_stale_claims()

    def sweep_stale_claims(self) -> SweepResult:
        result = SweepResult()
        limits = self.limits
        now = self.now()

        for message in self._store.iter_messages(
            MessageStatus.GENERATING, page_size=limits.page_size, max_pages=limits.max_pages,
        ):
            if not is_stale_generating(message, now, limits.generation_lease_seconds):
                continue
            if self._store.transition_message(
                message.id, from_status=MessageStatus.GENERATING,
                to_status=MessageStatus.NOT_GENERATED, now=now,
                expected_token=message.claim_token,
                updates={"last_error": "generation lease expired"},
            ):
                result.reset_messages.append(message.id)
                logger.warning("Reset stale generating message %s", message.id,
                               extra={"worker": self.name, "message_id": message.id})
            else:
                result.skip_reasons.append(
                    SkipReason(record_id=message.id, reason="generation finished during sweep")
                )

        for activation in self._store.iter_activations(
            ActivationStatus.PROCESSING, page_size=limits.page_size, max_pages=limits.max_pages,
        ):
            if is_stale_activation(activation, now, limits.stale_activation_seconds):
                result.stale_activations.append(StaleRecord(
                    record_id=activation.id,
                    status=activation.status,
                    age_seconds=age_seconds(now, activation.updated_at or activation.created_at),
                    detail=f"{activation.processed_count}/{len(activation.target_ids)} processed",
                ))

        if result.stale_activations:
            logger.warning("%d stale activations", len(result.stale_activations),
                           extra={"worker": self.name, "run_id": result.run_id})
        return result
