"""Integration test fixtures — LocalStack DynamoDB and SES."""

from __future__ import annotations

import os
import sys

import boto3
import pytest
from botocore.config import Config

# Default LocalStack endpoint
LOCALSTACK_URL = os.environ.get("LOCALSTACK_URL", "http://localhost:4566")
TABLE_SUFFIX = "-inttest"
REGION = "us-east-1"


def _localstack_available() -> bool:
    """Check if LocalStack is reachable."""
    try:
        client = boto3.client(
            "dynamodb", region_name=REGION, endpoint_url=LOCALSTACK_URL,
            config=Config(connect_timeout=1, read_timeout=1, retries={"max_attempts": 0}),
        )
        client.list_tables()
        return True
    except Exception:
        return False


skip_no_localstack = pytest.mark.skipif(
    not _localstack_available(),
    reason="LocalStack not available",
)


@pytest.fixture(scope="session")
def localstack_ddb():
    """DynamoDB resource pointing at LocalStack."""
    return boto3.resource("dynamodb", region_name=REGION, endpoint_url=LOCALSTACK_URL)


@pytest.fixture(scope="session")
def localstack_ses():
    """SES client pointing at LocalStack, with the demo sender verified."""
    client = boto3.client("ses", region_name=REGION, endpoint_url=LOCALSTACK_URL)
    client.verify_email_identity(EmailAddress="noreply@example.com")
    return client


@pytest.fixture(scope="session")
def seeded_tables(localstack_ddb):
    """Create the tables and seed the demo sequence via the setup script."""
    sys.path.insert(0, str(os.path.join(os.path.dirname(__file__), "..", "..", "scripts")))
    from create_tables import create_tables, seed_demo_data

    create_tables(localstack_ddb, suffix=TABLE_SUFFIX)
    seed_demo_data(TABLE_SUFFIX, REGION, LOCALSTACK_URL)
    return TABLE_SUFFIX
