"""Create the Cadence DynamoDB tables and seed a demo sequence.

Usage:
    python scripts/create_tables.py --endpoint-url http://localhost:4566 --seed
"""

from __future__ import annotations

import argparse
from typing import Any

import boto3

from cadence.models.sequence import Sequence, Step, StepType
from cadence.models.target import TargetProfile
from cadence.persistence.dynamodb_backend import (
    ACTIVATIONS_TABLE,
    MEMBERS_TABLE,
    MESSAGES_TABLE,
    SEQUENCES_TABLE,
    STATUS_INDEX,
    TARGETS_TABLE,
    DynamoDBSequenceStore,
    DynamoDBTargetDirectory,
)

# (table name, sort attribute of the sparse status index or None)
TABLE_DEFINITIONS: list[tuple[str, str | None]] = [
    (SEQUENCES_TABLE, None),
    (ACTIVATIONS_TABLE, "createdAt"),
    (MEMBERS_TABLE, "enrolledAt"),
    (MESSAGES_TABLE, "scheduledSendTime"),
    (TARGETS_TABLE, None),
]

DEMO_SEQUENCE = Sequence(
    id="demo-renewal",
    name="Contract renewal outreach",
    owner_id="demo@example.com",
    steps=[
        Step(step_type=StepType.AUTO_MESSAGE, offset_minutes=0, name="Intro",
             prompt="Introduce our energy brokerage and ask about their contract end date."),
        Step(step_type=StepType.MANUAL_TASK, offset_minutes=3 * 24 * 60, name="Call"),
        Step(step_type=StepType.AUTO_MESSAGE, offset_minutes=7 * 24 * 60, name="Follow-up",
             prompt="Follow up with a short note on current fixed-rate pricing."),
    ],
)

DEMO_TARGETS = [
    TargetProfile(id="demo-t1", email="alex@acme.example", first_name="Alex", last_name="Rivera",
                  title="Facilities Manager", company="Acme Cold Storage", industry="Logistics"),
    TargetProfile(id="demo-t2", email="sam@brightmill.example", first_name="Sam", last_name="Chen",
                  title="CFO", company="Bright Mill", industry="Manufacturing"),
]


def create_tables(ddb: Any, suffix: str = "") -> list[str]:
    """Create all Cadence tables. Skips tables that already exist."""
    client = ddb.meta.client
    existing = client.list_tables().get("TableNames", [])
    created: list[str] = []

    for name, index_sort in TABLE_DEFINITIONS:
        table_name = f"{name}{suffix}"
        if table_name in existing:
            print(f"  Table {table_name} already exists, skipping")
            continue
        attributes = [
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
        ]
        extra: dict[str, Any] = {}
        if index_sort:
            attributes += [
                {"AttributeName": "status", "AttributeType": "S"},
                {"AttributeName": index_sort, "AttributeType": "N"},
            ]
            extra["GlobalSecondaryIndexes"] = [{
                "IndexName": STATUS_INDEX,
                "KeySchema": [
                    {"AttributeName": "status", "KeyType": "HASH"},
                    {"AttributeName": index_sort, "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }]
        client.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=attributes,
            BillingMode="PAY_PER_REQUEST",
            **extra,
        )
        created.append(table_name)
        print(f"  Created table {table_name}")
    return created


def seed_demo_data(suffix: str = "", region: str = "us-east-1",
                   endpoint_url: str | None = None) -> None:
    store = DynamoDBSequenceStore(table_suffix=suffix, region=region, endpoint_url=endpoint_url)
    store.put_sequence(DEMO_SEQUENCE)
    print(f"  Seeded sequence {DEMO_SEQUENCE.id} with {len(DEMO_SEQUENCE.steps)} steps")

    targets = DynamoDBTargetDirectory(table_suffix=suffix, region=region, endpoint_url=endpoint_url)
    for target in DEMO_TARGETS:
        targets.put_target(target)
    print(f"  Seeded {len(DEMO_TARGETS)} targets")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create DynamoDB tables for Cadence")
    parser.add_argument("--endpoint-url", default=None, help="DynamoDB endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--table-suffix", default="", help="Table name suffix (e.g. -dev)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    parser.add_argument("--seed", action="store_true", help="Seed a demo sequence and targets")
    args = parser.parse_args()

    kwargs: dict[str, Any] = {"region_name": args.region}
    if args.endpoint_url:
        kwargs["endpoint_url"] = args.endpoint_url

    ddb = boto3.resource("dynamodb", **kwargs)

    print("Creating tables...")
    create_tables(ddb, suffix=args.table_suffix)

    if args.seed:
        print("Seeding demo data...")
        seed_demo_data(args.table_suffix, args.region, args.endpoint_url)

    print("Done!")


if __name__ == "__main__":
    main()
