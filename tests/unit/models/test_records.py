"""Tests for record models and their helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from cadence.models.pipeline import SequenceActivation, message_id_for
from cadence.models.results import RunResult
from cadence.models.sequence import Sequence, Step

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_message_id_is_deterministic_per_member_step():
    assert message_id_for("mem-1", 3) == "msg-mem-1-0003"
    assert message_id_for("mem-1", 3) == message_id_for("mem-1", 3)
    assert message_id_for("mem-1", 3) != message_id_for("mem-1", 4)


def test_cursor_bounded_by_batch():
    with pytest.raises(ValidationError):
        SequenceActivation(id="a", sequence_id="S", target_ids=["t1"], processed_count=2, created_at=NOW)


def test_send_time_from_offset():
    seq = Sequence(id="S", steps=[Step(offset_minutes=0), Step(offset_minutes=90)])
    assert seq.send_time_for(1, NOW) == NOW + timedelta(minutes=90)
    assert seq.step_at(2) is None


def test_run_result_serializes_camel_case():
    result = RunResult(worker="dispatch")
    result.skip("msg-1", "sequence paused")
    body = result.model_dump(mode="json", by_alias=True)
    assert body["skippedCount"] == 1
    assert body["skipReasons"] == [{"recordId": "msg-1", "reason": "sequence paused"}]
    assert body["createdOrSentCount"] == 0


def test_merge_accumulates():
    a, b = RunResult(worker="x"), RunResult(worker="x", created_or_sent_count=2, capped=True)
    b.skip("r", "why")
    a.merge(b)
    assert (a.created_or_sent_count, a.skipped_count, a.capped) == (2, 1, True)
