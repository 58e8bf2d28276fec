"""Tests for the read-only diagnostics snapshot."""

from __future__ import annotations

from datetime import timedelta


def test_counts_and_actionable_items(pipeline, store, model, delivery, clock, settings, one_step):
    pipeline.processor.process(pipeline.enrollment.enqueue_activation("S1", ["t1", "t2", "t3"]).id)
    settings.worker.max_generation_attempts = 1
    model.fail_next(1)
    pipeline.generator.run()
    for msg in pipeline.approval.list_pending():
        pipeline.approval.approve(msg.id)
    settings.worker.max_delivery_attempts = 1
    delivery.fail_next(1)
    pipeline.dispatcher.run()

    stuck = pipeline.enrollment.enqueue_activation("S1", ["t4"])
    store.claim_activation(stuck.id, token="dead", now=clock(), lease_until=clock())
    clock.advance(seconds=5)

    snap = pipeline.diagnostics.snapshot()
    assert snap.activations_by_status == {"pending": 0, "processing": 1, "completed": 1, "failed": 0}
    assert snap.messages_by_status["sent"] == 1
    assert snap.messages_by_status["failed"] == 1
    assert snap.messages_by_status["not_generated"] == 1
    assert len(snap.generation_exhausted) == 1
    assert snap.failed_messages[0].reason.startswith("delivery failed")
    assert [s.record_id for s in snap.stale_activations] == [stuck.id]
    assert snap.messages_by_sequence == {"S1": {"not_generated": 1, "sent": 1, "failed": 1}}
    assert snap.members_by_status["active"] == 2
    assert not snap.truncated


def test_sequence_filter(pipeline, store, one_step, three_step):
    pipeline.processor.process(pipeline.enrollment.enqueue_activation("S1", ["t1"]).id)
    pipeline.processor.process(pipeline.enrollment.enqueue_activation("S3", ["t2"]).id)
    snap = pipeline.diagnostics.snapshot("S3")
    assert snap.sequence_filter == "S3"
    assert snap.messages_by_status["not_generated"] == 1
    assert list(snap.messages_by_sequence) == ["S3"]


def test_truncation_flag(pipeline, settings, one_step):
    settings.worker.page_size = 1
    settings.worker.max_pages = 1
    pipeline.processor.process(pipeline.enrollment.enqueue_activation("S1", ["t1", "t2"]).id)
    assert pipeline.diagnostics.snapshot().truncated


def test_stale_generating_reported(pipeline, store, clock, one_step):
    pipeline.processor.process(pipeline.enrollment.enqueue_activation("S1", ["t1"]).id)
    msg = store.all_messages()[0]
    store.transition_message(msg.id, from_status="not_generated", to_status="generating",
                             now=clock(), new_token="dead", lease_until=clock())
    clock.advance(seconds=timedelta(minutes=1).seconds)
    snap = pipeline.diagnostics.snapshot()
    assert [s.record_id for s in snap.stale_generating] == [msg.id]
