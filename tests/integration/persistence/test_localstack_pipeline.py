"""Integration tests for the DynamoDB store and SES delivery against LocalStack."""

from __future__ import annotations

import uuid

import pytest

from cadence.core.config import AppSettings
from cadence.delivery.ses import SESDeliveryService
from cadence.models.pipeline import ActivationStatus, MemberStatus, MessageStatus
from cadence.models.sequence import StepType
from cadence.persistence.dynamodb_backend import DynamoDBSequenceStore, DynamoDBTargetDirectory
from cadence.workers.runner import build_pipeline
from tests.fakes import MemoryCacheBackend, MemoryEventPublisher, MockModelProvider
from tests.integration.conftest import LOCALSTACK_URL, REGION, skip_no_localstack


@skip_no_localstack
class TestLocalStackPipeline:
    @pytest.fixture
    def store(self, seeded_tables):
        return DynamoDBSequenceStore(table_suffix=seeded_tables, region=REGION, endpoint_url=LOCALSTACK_URL)

    @pytest.fixture
    def pipeline(self, seeded_tables, store, localstack_ses):
        return build_pipeline(
            AppSettings(),
            store=store,
            cache=MemoryCacheBackend(),
            events=MemoryEventPublisher(),
            targets=DynamoDBTargetDirectory(table_suffix=seeded_tables, region=REGION,
                                            endpoint_url=LOCALSTACK_URL),
            model=MockModelProvider(),
            delivery=SESDeliveryService(from_email="noreply@example.com", region=REGION,
                                        endpoint_url=LOCALSTACK_URL),
        )

    @pytest.fixture
    def sequence_id(self, store):
        # Tables outlive a single run, so each test enrolls into a fresh copy of the demo sequence
        from create_tables import DEMO_SEQUENCE

        seq = DEMO_SEQUENCE.model_copy(update={"id": f"demo-{uuid.uuid4().hex[:8]}"})
        store.put_sequence(seq)
        return seq.id

    def test_demo_sequence_from_seed(self, store):
        seq = store.get_sequence("demo-renewal")
        assert [s.step_type for s in seq.steps] == [StepType.AUTO_MESSAGE, StepType.MANUAL_TASK, StepType.AUTO_MESSAGE]

    def test_first_step_end_to_end(self, pipeline, store, sequence_id):
        act = pipeline.enrollment.enqueue_activation(sequence_id, ["demo-t1", "demo-t2"])
        pipeline.processor.process(act.id)
        assert store.get_activation(act.id).status == ActivationStatus.COMPLETED

        pipeline.generator.run()
        pending = pipeline.approval.list_pending(sequence_id=sequence_id)
        assert len(pending) == 2
        for msg in pending:
            pipeline.approval.approve(msg.id)

        pipeline.dispatcher.run()
        for target in ("demo-t1", "demo-t2"):
            member = store.find_active_member(sequence_id, target)
            assert member.status == MemberStatus.ACTIVE
            assert member.current_step_index == 1
            sent = store.get_step_message(member.id, 0)
            assert sent.status == MessageStatus.SENT
            assert sent.delivery_id

    def test_duplicate_enrollment_is_skipped(self, pipeline, store, sequence_id):
        first = pipeline.enrollment.enqueue_activation(sequence_id, ["demo-t1"])
        pipeline.processor.process(first.id)
        second = pipeline.enrollment.enqueue_activation(sequence_id, ["demo-t1"])
        pipeline.processor.process(second.id)
        act = store.get_activation(second.id)
        assert act.members_created == 0
        assert [s.reason for s in act.skipped] == ["already enrolled"]
