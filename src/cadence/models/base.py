"""Shared pydantic base for persisted records: camelCase on the wire, snake_case in code."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = 2


class Record(BaseModel):
    """Base for every record stored in or returned by the pipeline."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:20]}"


def new_claim_token() -> str:
    return uuid.uuid4().hex
