"""Record <-> DynamoDB item conversion.

Timestamps persist as epoch milliseconds so the ``status-index`` range keys
sort and compare numerically; pydantic reads them back as UTC datetimes.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

R = TypeVar("R", bound=BaseModel)

_KEY_ATTRS = ("PK", "SK")


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def encode_value(value: Any) -> Any:
    """Convert a Python value into something the boto3 resource layer accepts."""
    if isinstance(value, datetime):
        return to_epoch_ms(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return encode_value(value.model_dump(by_alias=True, exclude_none=True))
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def _decode_decimals(item: dict[str, Any]) -> dict[str, Any]:
    """Convert Decimal values in a DynamoDB item to int/float."""
    out: dict[str, Any] = {}
    for k, v in item.items():
        if isinstance(v, Decimal):
            out[k] = int(v) if v == int(v) else float(v)
        elif isinstance(v, dict):
            out[k] = _decode_decimals(v)
        elif isinstance(v, list):
            out[k] = [
                _decode_decimals(i) if isinstance(i, dict)
                else (int(i) if isinstance(i, Decimal) and i == int(i) else float(i) if isinstance(i, Decimal) else i)
                for i in v
            ]
        else:
            out[k] = v
    return out


def to_item(record: BaseModel, pk: str, sk: str) -> dict[str, Any]:
    item = encode_value(record.model_dump(by_alias=True, exclude_none=True))
    item["PK"] = pk
    item["SK"] = sk
    return item


def from_item(model: type[R], item: dict[str, Any],
              normalize: Callable[[dict[str, Any]], dict[str, Any]] | None = None) -> R:
    data = {k: v for k, v in _decode_decimals(item).items() if k not in _KEY_ATTRS}
    if normalize is not None:
        data = normalize(data)
    return model.model_validate(data)


def attr_name(field: str) -> str:
    """snake_case model field -> stored camelCase attribute."""
    return to_camel(field)
