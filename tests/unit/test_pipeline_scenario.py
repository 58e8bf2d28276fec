"""End-to-end pass over the four stages with in-memory backends."""

from __future__ import annotations

from cadence.models.pipeline import ActivationStatus, MessageStatus


def test_single_step_sequence_two_targets(pipeline, store, events, one_step):
    act = pipeline.enrollment.enqueue_activation("S1", ["t1", "t2"])

    pipeline.processor.run()
    members = store.all_members()
    assert len(members) == 2
    assert all(m.current_step_index == 0 for m in members)
    messages = store.all_messages()
    assert len(messages) == 2
    assert all(m.status == MessageStatus.NOT_GENERATED and m.step_index == 0 for m in messages)
    assert store.get_activation(act.id).status == ActivationStatus.COMPLETED

    pipeline.generator.run()
    for msg in store.all_messages():
        assert msg.status == MessageStatus.PENDING_APPROVAL
        assert msg.content.body

    for msg in pipeline.approval.list_pending():
        pipeline.approval.approve(msg.id)
    pipeline.dispatcher.run()

    assert all(m.status == MessageStatus.SENT for m in store.all_messages())
    assert all(m.current_step_index == 1 for m in store.all_members())
    assert events.topics() == [
        "activation.completed",
        "message.generated", "message.generated",
        "message.approved", "message.approved",
        "message.sent", "member.completed",
        "message.sent", "member.completed",
    ]


def test_every_worker_run_is_safe_to_repeat(pipeline, store, delivery, one_step):
    pipeline.enrollment.enqueue_activation("S1", ["t1", "t2", "t3"])
    for _ in range(3):
        pipeline.processor.run()
        pipeline.generator.run()
        for msg in pipeline.approval.list_pending():
            pipeline.approval.approve(msg.id)
        pipeline.dispatcher.run()
    assert len(store.all_members()) == 3
    assert len(store.all_messages()) == 3
    assert len(delivery.sent) == 3
