"""DynamoDB-specific behaviour of DynamoDBSequenceStore using moto."""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import boto3
import pytest
from moto import mock_aws

from cadence.core.exceptions import StoreError
from cadence.models.pipeline import MemberStatus, SequenceMember
from cadence.models.sequence import Sequence, Step
from cadence.models.target import TargetProfile
from cadence.persistence.dynamodb_backend import DynamoDBSequenceStore, DynamoDBTargetDirectory
from cadence.persistence.memory_backend import MemoryCacheBackend

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "scripts"))

from create_tables import create_tables  # noqa: E402

TABLE_SUFFIX = "-test"
REGION = "us-east-1"
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def aws():
    with mock_aws():
        ddb = boto3.resource("dynamodb", region_name=REGION)
        create_tables(ddb, suffix=TABLE_SUFFIX)
        yield ddb


@pytest.fixture
def store(aws):
    return DynamoDBSequenceStore(table_suffix=TABLE_SUFFIX, region=REGION)


@pytest.fixture
def cached_store(aws):
    cache = MemoryCacheBackend()
    return DynamoDBSequenceStore(table_suffix=TABLE_SUFFIX, region=REGION, cache=cache), cache


class TestItemLayout:
    def test_member_item_is_camel_case_epoch_ms(self, store, aws):
        store.create_member(SequenceMember(id="mem-1", sequence_id="S1", target_id="t1", enrolled_at=NOW))
        item = aws.Table(f"cadence-members{TABLE_SUFFIX}").get_item(
            Key={"PK": "MEMBER#mem-1", "SK": "STATE"})["Item"]
        assert item["targetId"] == "t1"
        assert item["currentStepIndex"] == 0
        assert int(item["enrolledAt"]) == int(NOW.timestamp() * 1000)

    def test_guard_item_kept_out_of_status_index(self, store, aws):
        store.create_member(SequenceMember(id="mem-1", sequence_id="S1", target_id="t1", enrolled_at=NOW))
        guard = aws.Table(f"cadence-members{TABLE_SUFFIX}").get_item(
            Key={"PK": "ENROLLMENT#S1#t1", "SK": "ACTIVE"})["Item"]
        assert guard["memberId"] == "mem-1"
        assert [m.id for m in store.iter_members(MemberStatus.ACTIVE)] == ["mem-1"]


class TestLegacyReads:
    def test_legacy_activation_item_is_normalized(self, store, aws):
        aws.Table(f"cadence-activations{TABLE_SUFFIX}").put_item(Item={
            "PK": "ACTIVATION#old-1", "SK": "STATE", "id": "old-1", "sequenceId": "S1",
            "contactIds": ["t1", "t2"], "processedContacts": 1, "userId": "Rep@X.com",
            "status": "pending", "createdAt": 1772442000000,
        })
        act = store.get_activation("old-1")
        assert act.target_ids == ["t1", "t2"]
        assert act.processed_count == 1
        assert act.owner_id == "rep@x.com"

    def test_legacy_sequence_steps(self, store, aws):
        aws.Table(f"cadence-sequences{TABLE_SUFFIX}").put_item(Item={
            "PK": "SEQUENCE#S9", "SK": "DEFINITION", "id": "S9",
            "steps": [{"type": "auto-email", "delayMinutes": 60, "data": {"aiPrompt": "Hello"}}],
        })
        seq = store.get_sequence("S9")
        assert seq.steps[0].is_message
        assert seq.steps[0].offset_minutes == 60
        assert seq.steps[0].prompt == "Hello"


class TestSequenceCache:
    def test_get_populates_cache(self, cached_store):
        store, cache = cached_store
        store.put_sequence(Sequence(id="S1", steps=[Step(prompt="hi")]))
        store.get_sequence("S1")
        cached = json.loads(cache.get("sequence:S1"))
        assert cached["steps"][0]["prompt"] == "hi"

    def test_cache_hit_skips_table(self, cached_store):
        store, cache = cached_store
        cache.setex("sequence:S2", 60, Sequence(id="S2", name="cached").model_dump_json(by_alias=True))
        assert store.get_sequence("S2").name == "cached"

    def test_put_invalidates(self, cached_store):
        store, cache = cached_store
        store.put_sequence(Sequence(id="S1", version=1))
        store.get_sequence("S1")
        store.put_sequence(Sequence(id="S1", version=2))
        assert cache.get("sequence:S1") is None
        assert store.get_sequence("S1").version == 2


class TestTargetDirectory:
    def test_round_trip_and_company_name(self, aws):
        directory = DynamoDBTargetDirectory(table_suffix=TABLE_SUFFIX, region=REGION)
        directory.put_target(TargetProfile(id="t1", email="a@b.com", first_name="Ann"))
        aws.Table(f"cadence-targets{TABLE_SUFFIX}").put_item(Item={
            "PK": "TARGET#t2", "SK": "PROFILE", "email": "c@d.com", "companyName": "Acme",
        })
        assert directory.get_target("t1").display_name == "Ann"
        assert directory.get_target("t2").company == "Acme"
        assert directory.get_target("t3") is None


def test_missing_table_raises_store_error():
    with mock_aws():
        store = DynamoDBSequenceStore(table_suffix="-absent", region=REGION)
        with pytest.raises(StoreError):
            store.get_member("mem-1")
