"""Tests for the DynamoDB table setup script."""

from __future__ import annotations

import sys
from pathlib import Path

import boto3
import pytest
from moto import mock_aws

from cadence.persistence.dynamodb_backend import DynamoDBSequenceStore, DynamoDBTargetDirectory

# Make scripts/ importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent / "scripts"))

from create_tables import DEMO_SEQUENCE, create_tables, seed_demo_data  # noqa: E402


@pytest.fixture
def ddb():
    with mock_aws():
        yield boto3.resource("dynamodb", region_name="us-east-1")


class TestCreateTables:
    def test_creates_all_five_tables(self, ddb):
        created = create_tables(ddb, suffix="-test")
        assert len(created) == 5
        tables = ddb.meta.client.list_tables()["TableNames"]
        assert "cadence-messages-test" in tables

    def test_idempotent_skips_existing(self, ddb):
        create_tables(ddb, suffix="-test")
        assert create_tables(ddb, suffix="-test") == []
        assert len(ddb.meta.client.list_tables()["TableNames"]) == 5

    def test_status_index_only_on_work_tables(self, ddb):
        create_tables(ddb, suffix="-test")
        messages = ddb.meta.client.describe_table(TableName="cadence-messages-test")["Table"]
        sequences = ddb.meta.client.describe_table(TableName="cadence-sequences-test")["Table"]
        assert messages["GlobalSecondaryIndexes"][0]["IndexName"] == "status-index"
        assert not sequences.get("GlobalSecondaryIndexes")


class TestSeedDemoData:
    def test_seeds_sequence_and_targets(self, ddb):
        create_tables(ddb, suffix="-test")
        seed_demo_data("-test")
        seq = DynamoDBSequenceStore(table_suffix="-test").get_sequence(DEMO_SEQUENCE.id)
        assert len(seq.steps) == 3
        assert DynamoDBTargetDirectory(table_suffix="-test").get_target("demo-t1").company == "Acme Cold Storage"
