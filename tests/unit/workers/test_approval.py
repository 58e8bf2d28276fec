"""Tests for the Approval Gate."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from cadence.core.exceptions import (
    InvalidContentError,
    InvalidTransitionError,
    RecordNotFoundError,
)
from cadence.models.pipeline import MessageContent, MessageStatus


@pytest.fixture
def drafted(pipeline, one_step):
    pipeline.processor.process(pipeline.enrollment.enqueue_activation("S1", ["t1", "t2"]).id)
    pipeline.generator.run()


class TestListPending:
    def test_lists_drafts(self, pipeline, drafted):
        pending = pipeline.approval.list_pending()
        assert len(pending) == 2
        assert all(m.status == MessageStatus.PENDING_APPROVAL for m in pending)

    def test_filters(self, pipeline, drafted):
        assert len(pipeline.approval.list_pending(owner_id="rep@example.com")) == 2
        assert pipeline.approval.list_pending(owner_id="someone@else.com") == []
        assert pipeline.approval.list_pending(sequence_id="S9") == []
        assert len(pipeline.approval.list_pending(limit=1)) == 1


class TestApprove:
    def test_approve_as_drafted(self, pipeline, events, drafted):
        msg = pipeline.approval.list_pending()[0]
        approved = pipeline.approval.approve(msg.id, approved_by="rep@example.com")
        assert approved.status == MessageStatus.APPROVED
        assert approved.content == msg.content
        assert approved.approved_by == "rep@example.com"
        assert "message.approved" in events.topics()

    def test_edit_content_and_time(self, pipeline, drafted):
        msg = pipeline.approval.list_pending()[0]
        naive = datetime(2026, 3, 9, 14, 30)
        approved = pipeline.approval.approve(
            msg.id, edited_content=MessageContent(subject="Edited", body="New body"), new_send_time=naive,
        )
        assert approved.content.subject == "Edited"
        assert approved.content.html == "<p>New body</p>"
        assert approved.scheduled_send_time.utcoffset() == timedelta(0)
        assert approved.scheduled_send_time.hour == 14

    def test_empty_edit_rejected(self, pipeline, drafted):
        msg = pipeline.approval.list_pending()[0]
        with pytest.raises(InvalidContentError):
            pipeline.approval.approve(msg.id, edited_content=MessageContent(subject="x", body="  "))
        assert pipeline.approval.list_pending()[0].status == MessageStatus.PENDING_APPROVAL

    def test_double_approve_rejected(self, pipeline, drafted):
        msg = pipeline.approval.list_pending()[0]
        pipeline.approval.approve(msg.id)
        with pytest.raises(InvalidTransitionError):
            pipeline.approval.approve(msg.id)

    def test_ungenerated_message_cannot_be_approved(self, pipeline, store, one_step):
        pipeline.processor.process(pipeline.enrollment.enqueue_activation("S1", ["t3"]).id)
        msg = store.all_messages()[0]
        with pytest.raises(InvalidTransitionError):
            pipeline.approval.approve(msg.id)

    def test_unknown_message(self, pipeline):
        with pytest.raises(RecordNotFoundError):
            pipeline.approval.approve("msg-nope-0000")
