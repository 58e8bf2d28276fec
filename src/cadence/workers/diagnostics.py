"""Read-only pipeline diagnostics for operators."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict

from cadence.models.pipeline import ActivationStatus, MemberStatus, MessageStatus, SkipReason
from cadence.models.results import DiagnosticsSnapshot, StaleRecord
from cadence.workers.base import BaseWorker
from cadence.workers.sweeper import age_seconds, is_stale_activation, is_stale_generating

logger = logging.getLogger(__name__)


class PipelineDiagnostics(BaseWorker):
    """Aggregates counts and actionable items. Never writes.

    Each status listing is bounded by ``page_size * max_pages``; when any
    listing hits the bound the snapshot is marked ``truncated``.
    """

    name = "diagnostics"

    def snapshot(self, sequence_id: str | None = None) -> DiagnosticsSnapshot:
        limits = self.limits
        bound = limits.page_size * limits.max_pages
        now = self.now()
        snap = DiagnosticsSnapshot(sequence_filter=sequence_id)

        def keep(record) -> bool:
            return sequence_id is None or record.sequence_id == sequence_id

        for status in ActivationStatus:
            rows = list(self._store.iter_activations(status, page_size=limits.page_size,
                                                     max_pages=limits.max_pages))
            snap.truncated |= len(rows) >= bound
            rows = [r for r in rows if keep(r)]
            snap.activations_by_status[status.value] = len(rows)
            if status == ActivationStatus.PROCESSING:
                snap.stale_activations = [
                    StaleRecord(
                        record_id=a.id, status=a.status,
                        age_seconds=age_seconds(now, a.updated_at or a.created_at),
                        detail=f"{a.processed_count}/{len(a.target_ids)} processed",
                    )
                    for a in rows if is_stale_activation(a, now, limits.stale_activation_seconds)
                ]

        for status in MemberStatus:
            rows = list(self._store.iter_members(status, page_size=limits.page_size,
                                                 max_pages=limits.max_pages))
            snap.truncated |= len(rows) >= bound
            snap.members_by_status[status.value] = sum(1 for r in rows if keep(r))

        by_sequence: dict[str, Counter] = defaultdict(Counter)
        for status in MessageStatus:
            rows = list(self._store.iter_messages(status, page_size=limits.page_size,
                                                  max_pages=limits.max_pages))
            snap.truncated |= len(rows) >= bound
            rows = [r for r in rows if keep(r)]
            snap.messages_by_status[status.value] = len(rows)
            for m in rows:
                by_sequence[m.sequence_id][status.value] += 1

            if status == MessageStatus.GENERATING:
                snap.stale_generating = [
                    StaleRecord(
                        record_id=m.id, status=m.status,
                        age_seconds=age_seconds(now, m.updated_at or m.created_at),
                        detail=f"attempt {m.generation_attempts}",
                    )
                    for m in rows if is_stale_generating(m, now, limits.generation_lease_seconds)
                ]
            elif status == MessageStatus.FAILED:
                snap.failed_messages = [
                    SkipReason(record_id=m.id, reason=m.last_error or "failed") for m in rows
                ]
            elif status == MessageStatus.NOT_GENERATED:
                snap.generation_exhausted = [
                    m.id for m in rows if m.generation_attempts >= limits.max_generation_attempts
                ]

        snap.messages_by_sequence = {k: dict(v) for k, v in sorted(by_sequence.items())}
        if snap.truncated:
            logger.info("Diagnostics snapshot truncated at %d records per status", bound)
        return snap
