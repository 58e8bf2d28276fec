"""Tests for enrollment-side operations."""

from __future__ import annotations

import pytest

from cadence.core.exceptions import (
    ClaimConflictError,
    RecordNotFoundError,
    SequenceInactiveError,
    SequenceNotFoundError,
)
from cadence.models.pipeline import ActivationStatus, MemberStatus
from cadence.models.sequence import Sequence, SequenceStatus, Step
from cadence.workers.enrollment import ensure_step_message, step_skip_reason


class TestEnqueue:
    def test_dedupes_preserving_order(self, pipeline, store, one_step):
        act = pipeline.enrollment.enqueue_activation("S1", ["t2", " t1", "t2", "", "t3"])
        assert act.target_ids == ["t2", "t1", "t3"]
        assert act.status == ActivationStatus.PENDING
        assert act.owner_id == "rep@example.com"
        assert store.get_activation(act.id) == act

    def test_owner_override_normalized(self, pipeline, one_step):
        act = pipeline.enrollment.enqueue_activation("S1", ["t1"], owner_id="Boss@Example.com ")
        assert act.owner_id == "boss@example.com"

    def test_missing_sequence(self, pipeline):
        with pytest.raises(SequenceNotFoundError):
            pipeline.enrollment.enqueue_activation("nope", ["t1"])

    def test_archived_sequence(self, pipeline, store):
        store.put_sequence(Sequence(id="old", status=SequenceStatus.ARCHIVED, steps=[Step()]))
        with pytest.raises(SequenceInactiveError):
            pipeline.enrollment.enqueue_activation("old", ["t1"])


class TestRemoveMember:
    def test_remove_releases_enrollment(self, pipeline, store, one_step):
        pipeline.processor.process(pipeline.enrollment.enqueue_activation("S1", ["t1"]).id)
        member = store.all_members()[0]
        removed = pipeline.enrollment.remove_member(member.id)
        assert removed.status == MemberStatus.REMOVED
        assert store.find_active_member("S1", "t1") is None

        # re-enrollment after removal is allowed
        pipeline.processor.process(pipeline.enrollment.enqueue_activation("S1", ["t1"]).id)
        assert store.find_active_member("S1", "t1").id != member.id

    def test_remove_twice_conflicts(self, pipeline, store, one_step):
        pipeline.processor.process(pipeline.enrollment.enqueue_activation("S1", ["t1"]).id)
        member = store.all_members()[0]
        pipeline.enrollment.remove_member(member.id)
        with pytest.raises(ClaimConflictError):
            pipeline.enrollment.remove_member(member.id)

    def test_remove_unknown(self, pipeline):
        with pytest.raises(RecordNotFoundError):
            pipeline.enrollment.remove_member("mem-nope")


class TestCompleteManualStep:
    def test_rejects_message_step(self, pipeline, store, three_step):
        pipeline.processor.process(pipeline.enrollment.enqueue_activation("S3", ["t1"]).id)
        member = store.all_members()[0]
        with pytest.raises(ClaimConflictError):
            pipeline.enrollment.complete_manual_step(member.id, 0)

    def test_rejects_when_cursor_elsewhere(self, pipeline, store, three_step):
        pipeline.processor.process(pipeline.enrollment.enqueue_activation("S3", ["t1"]).id)
        member = store.all_members()[0]
        with pytest.raises(ClaimConflictError):
            pipeline.enrollment.complete_manual_step(member.id, 1)

    def test_last_manual_step_completes_member(self, pipeline, store, events):
        store.put_sequence(Sequence(id="C1", steps=[Step(step_type="manual-task")]))
        pipeline.processor.process(pipeline.enrollment.enqueue_activation("C1", ["t1"]).id)
        member = store.all_members()[0]
        pipeline.enrollment.complete_manual_step(member.id, 0)
        assert store.get_member(member.id).status == MemberStatus.COMPLETED
        assert "member.completed" in events.topics()


class TestStepArtifacts:
    def test_skip_reasons(self):
        seq = Sequence(id="S", steps=[Step(), Step(step_type="manual-task"), Step(step_type="fax")])
        assert step_skip_reason(seq, 0) is None
        assert step_skip_reason(seq, 1) == "manual task step has no message"
        assert step_skip_reason(seq, 2) == "unknown step type 'fax'"
        assert step_skip_reason(seq, 3) == "no step template"

    def test_ensure_is_create_if_absent(self, pipeline, store, clock, one_step):
        pipeline.processor.process(pipeline.enrollment.enqueue_activation("S1", ["t1"]).id)
        member = store.all_members()[0]
        created, reason = ensure_step_message(store, member, one_step, 0, recipient="x@y.z", now=clock())
        assert (created, reason) == (False, "message already exists")
        assert len(store.all_messages()) == 1
