"""Structured results returned by every worker trigger and operator tool."""

from __future__ import annotations

from typing import Optional

from pydantic import Field, computed_field

from cadence.models.base import Record, new_id
from cadence.models.pipeline import SkipReason


class RunResult(Record):
    """Outcome of one bounded worker invocation."""

    worker: str
    run_id: str = Field(default_factory=lambda: new_id("run"))
    created_or_sent_count: int = 0
    skip_reasons: list[SkipReason] = Field(default_factory=list)
    errors: int = 0
    capped: bool = False  # hit its per-tick bound; remaining work waits for the next tick

    @computed_field(alias="skippedCount")  # type: ignore[prop-decorator]
    @property
    def skipped_count(self) -> int:
        return len(self.skip_reasons)

    def skip(self, record_id: str, reason: str) -> None:
        self.skip_reasons.append(SkipReason(record_id=record_id, reason=reason))

    def merge(self, other: "RunResult") -> None:
        self.created_or_sent_count += other.created_or_sent_count
        self.skip_reasons.extend(other.skip_reasons)
        self.errors += other.errors
        self.capped = self.capped or other.capped


class BackfillResult(Record):
    """Outcome of a reconciliation pass. ``to_create`` is the plan, ``created`` what was written."""

    dry_run: bool
    force: bool = False
    run_id: str = Field(default_factory=lambda: new_id("backfill"))
    to_create: int = 0
    created: int = 0
    planned_message_ids: list[str] = Field(default_factory=list)
    skip_reasons: list[SkipReason] = Field(default_factory=list)
    invalidated_cache_keys: list[str] = Field(default_factory=list)

    @computed_field(alias="skippedCount")  # type: ignore[prop-decorator]
    @property
    def skipped_count(self) -> int:
        return len(self.skip_reasons)

    def skip(self, record_id: str, reason: str) -> None:
        self.skip_reasons.append(SkipReason(record_id=record_id, reason=reason))


class StaleRecord(Record):
    record_id: str
    status: str
    age_seconds: int
    detail: str = ""


class SweepResult(Record):
    run_id: str = Field(default_factory=lambda: new_id("sweep"))
    reset_messages: list[str] = Field(default_factory=list)
    stale_activations: list[StaleRecord] = Field(default_factory=list)
    skip_reasons: list[SkipReason] = Field(default_factory=list)


class DiagnosticsSnapshot(Record):
    """Read-only aggregate view for the operator surface."""

    activations_by_status: dict[str, int] = Field(default_factory=dict)
    members_by_status: dict[str, int] = Field(default_factory=dict)
    messages_by_status: dict[str, int] = Field(default_factory=dict)
    messages_by_sequence: dict[str, dict[str, int]] = Field(default_factory=dict)
    stale_activations: list[StaleRecord] = Field(default_factory=list)
    stale_generating: list[StaleRecord] = Field(default_factory=list)
    failed_messages: list[SkipReason] = Field(default_factory=list)
    generation_exhausted: list[str] = Field(default_factory=list)
    truncated: bool = False
    sequence_filter: Optional[str] = None
