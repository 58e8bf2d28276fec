"""DynamoDB backend implementing ISequenceStore with Redis-cached sequence reads.

Every stage transition is a single conditional write (or a transaction when a
guard item moves with it); a failed condition is a lost claim and returns
``False``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Iterator

import boto3
from botocore.exceptions import ClientError

from cadence.core.exceptions import StoreError
from cadence.models.normalize import (
    normalize_activation,
    normalize_member,
    normalize_message,
    normalize_sequence,
)
from cadence.models.pipeline import (
    ActivationStatus,
    MemberStatus,
    Message,
    SequenceActivation,
    SequenceMember,
    SkipReason,
    message_id_for,
)
from cadence.models.sequence import Sequence
from cadence.models.target import TargetProfile
from cadence.models.transitions import (
    ensure_activation_transition,
    ensure_member_transition,
    ensure_message_transition,
)
from cadence.persistence.codec import attr_name, encode_value, from_item, to_epoch_ms, to_item

logger = logging.getLogger(__name__)

SEQUENCES_TABLE = "cadence-sequences"
ACTIVATIONS_TABLE = "cadence-activations"
MEMBERS_TABLE = "cadence-members"
MESSAGES_TABLE = "cadence-messages"
TARGETS_TABLE = "cadence-targets"
STATUS_INDEX = "status-index"

_LOST = ("ConditionalCheckFailedException", "TransactionCanceledException")


def sequence_key(sequence_id: str) -> tuple[str, str]:
    return f"SEQUENCE#{sequence_id}", "DEFINITION"


def activation_key(activation_id: str) -> tuple[str, str]:
    return f"ACTIVATION#{activation_id}", "STATE"


def member_key(member_id: str) -> tuple[str, str]:
    return f"MEMBER#{member_id}", "STATE"


def guard_key(sequence_id: str, target_id: str) -> tuple[str, str]:
    return f"ENROLLMENT#{sequence_id}#{target_id}", "ACTIVE"


def message_key(message_id: str) -> tuple[str, str]:
    return f"MESSAGE#{message_id}", "STATE"


def _key(pair: tuple[str, str]) -> dict[str, str]:
    return {"PK": pair[0], "SK": pair[1]}


class _Expr:
    """Accumulates ExpressionAttributeNames/Values for one request."""

    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}

    def n(self, attr: str) -> str:
        placeholder = f"#{attr}"
        self.names[placeholder] = attr
        return placeholder

    def v(self, value: Any) -> str:
        placeholder = f":v{len(self.values)}"
        self.values[placeholder] = encode_value(value)
        return placeholder

    def assignments(self, fields: dict[str, Any]) -> tuple[list[str], list[str]]:
        """SET and REMOVE clauses for snake_case fields; ``None`` removes the attribute."""
        sets, removes = [], []
        for field, value in fields.items():
            name = self.n(attr_name(field))
            if value is None:
                removes.append(name)
            else:
                sets.append(f"{name} = {self.v(value)}")
        return sets, removes

    def kwargs(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ExpressionAttributeNames": self.names}
        if self.values:
            out["ExpressionAttributeValues"] = self.values
        return out


def _update_expression(sets: list[str], removes: list[str], adds: list[str] | None = None) -> str:
    parts = []
    if sets:
        parts.append("SET " + ", ".join(sets))
    if adds:
        parts.append("ADD " + ", ".join(adds))
    if removes:
        parts.append("REMOVE " + ", ".join(removes))
    return " ".join(parts)


class DynamoDBSequenceStore:
    """Production ISequenceStore backed by DynamoDB + optional Redis cache."""

    CACHE_TTL = 3600  # sequence definitions are immutable per version

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None, cache: Any = None,
                 cache_ttl: int | None = None) -> None:
        self._table_suffix = table_suffix
        self._region = region
        self._endpoint_url = endpoint_url
        self._cache = cache
        self._cache_ttl = cache_ttl or self.CACHE_TTL
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._ddb = boto3.resource("dynamodb", **kwargs)

    def _name(self, base: str) -> str:
        return f"{base}{self._table_suffix}"

    def _table(self, base: str):
        return self._ddb.Table(self._name(base))

    def _get_item(self, table_base: str, key: tuple[str, str]) -> dict[str, Any] | None:
        try:
            resp = self._table(table_base).get_item(Key=_key(key), ConsistentRead=True)
        except ClientError as exc:
            raise StoreError(f"DynamoDB get failed for {key[0]!r}: {exc}") from exc
        return resp.get("Item")

    def _put_item(self, table_base: str, item: dict[str, Any], condition: str | None = None) -> bool:
        kwargs: dict[str, Any] = {"Item": item}
        if condition:
            kwargs["ConditionExpression"] = condition
        try:
            self._table(table_base).put_item(**kwargs)
            return True
        except ClientError as exc:
            if exc.response["Error"]["Code"] in _LOST:
                return False
            raise StoreError(f"DynamoDB put failed for {item['PK']!r}: {exc}") from exc

    def _conditional_update(self, table_base: str, key: tuple[str, str], expr: _Expr,
                            update: str, condition: str) -> bool:
        try:
            self._table(table_base).update_item(
                Key=_key(key),
                UpdateExpression=update,
                ConditionExpression=condition,
                **expr.kwargs(),
            )
            return True
        except ClientError as exc:
            if exc.response["Error"]["Code"] in _LOST:
                logger.debug("Conditional update lost on %s", key[0])
                return False
            raise StoreError(f"DynamoDB update failed for {key[0]!r}: {exc}") from exc

    def _transact(self, items: list[dict[str, Any]], label: str) -> bool:
        try:
            self._ddb.meta.client.transact_write_items(TransactItems=items)
            return True
        except ClientError as exc:
            if exc.response["Error"]["Code"] in _LOST:
                logger.debug("Transaction lost: %s", label)
                return False
            raise StoreError(f"DynamoDB transaction failed ({label}): {exc}") from exc

    def _query_status(self, table_base: str, status: str, range_attr: str,
                      upper: Any = None, page_size: int = 25,
                      max_pages: int | None = None) -> Iterator[dict[str, Any]]:
        """Page through the sparse status index, oldest first, up to ``max_pages``."""
        expr = _Expr()
        key_cond = f"{expr.n('status')} = {expr.v(status)}"
        if upper is not None:
            key_cond += f" AND {expr.n(range_attr)} <= {expr.v(upper)}"
        kwargs: dict[str, Any] = {
            "IndexName": STATUS_INDEX,
            "KeyConditionExpression": key_cond,
            "Limit": page_size,
            **expr.kwargs(),
        }
        pages = 0
        while True:
            try:
                resp = self._table(table_base).query(**kwargs)
            except ClientError as exc:
                raise StoreError(f"DynamoDB status query failed on {table_base!r}: {exc}") from exc
            yield from resp.get("Items", [])
            pages += 1
            last = resp.get("LastEvaluatedKey")
            if not last or (max_pages is not None and pages >= max_pages):
                return
            kwargs["ExclusiveStartKey"] = last

    # ---- sequences ----

    def put_sequence(self, sequence: Sequence) -> None:
        self._put_item(SEQUENCES_TABLE, to_item(sequence, *sequence_key(sequence.id)))
        if self._cache is not None:
            self._cache.delete(f"sequence:{sequence.id}")

    def get_sequence(self, sequence_id: str) -> Sequence | None:
        cache_key = f"sequence:{sequence_id}"

        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return Sequence.model_validate(json.loads(cached))

        item = self._get_item(SEQUENCES_TABLE, sequence_key(sequence_id))
        if item is None:
            return None
        sequence = from_item(Sequence, item, normalize_sequence)

        if self._cache is not None:
            self._cache.setex(cache_key, self._cache_ttl, sequence.model_dump_json(by_alias=True))

        return sequence

    # ---- activations ----

    def put_activation(self, activation: SequenceActivation) -> None:
        self._put_item(ACTIVATIONS_TABLE, to_item(activation, *activation_key(activation.id)))

    def get_activation(self, activation_id: str) -> SequenceActivation | None:
        item = self._get_item(ACTIVATIONS_TABLE, activation_key(activation_id))
        return from_item(SequenceActivation, item, normalize_activation) if item else None

    def iter_activations(self, status: str, *, page_size: int = 25,
                         max_pages: int | None = None) -> Iterator[SequenceActivation]:
        for item in self._query_status(ACTIVATIONS_TABLE, status, "createdAt",
                                       page_size=page_size, max_pages=max_pages):
            yield from_item(SequenceActivation, item, normalize_activation)

    def claim_activation(self, activation_id: str, *, token: str, now: datetime,
                         lease_until: datetime, reclaim_expired: bool = True) -> bool:
        expr = _Expr()
        status, lease = expr.n("status"), expr.n("leaseExpiresAt")
        processing = f"{status} = {expr.v(ActivationStatus.PROCESSING)}"
        free = f"attribute_not_exists({expr.n('claimToken')})"
        if reclaim_expired:
            free = f"({free} OR attribute_not_exists({lease}) OR {lease} < {expr.v(now)})"
        condition = f"({status} = {expr.v(ActivationStatus.PENDING)} OR ({processing} AND {free}))"
        sets = [
            f"{status} = {expr.v(ActivationStatus.PROCESSING)}",
            f"{expr.n('claimToken')} = {expr.v(token)}",
            f"{lease} = {expr.v(lease_until)}",
            f"{expr.n('updatedAt')} = {expr.v(now)}",
            f"{expr.n('processingStartedAt')} = if_not_exists({expr.n('processingStartedAt')}, {expr.v(now)})",
        ]
        adds = [f"{expr.n('attemptCount')} {expr.v(1)}"]
        return self._conditional_update(
            ACTIVATIONS_TABLE, activation_key(activation_id), expr,
            _update_expression(sets, [], adds), f"attribute_exists(PK) AND {condition}",
        )

    def checkpoint_activation(self, activation_id: str, *, token: str, expected_count: int,
                              now: datetime, lease_until: datetime,
                              skip: SkipReason | None = None, members_created: int = 0,
                              messages_created: int = 0) -> bool:
        expr = _Expr()
        count = expr.n("processedCount")
        condition = (
            f"{expr.n('status')} = {expr.v(ActivationStatus.PROCESSING)} AND "
            f"{expr.n('claimToken')} = {expr.v(token)} AND "
            f"{count} = {expr.v(expected_count)} AND "
            f"size({expr.n('targetIds')}) > {expr.v(expected_count)}"
        )
        sets = [
            f"{count} = {expr.v(expected_count + 1)}",
            f"{expr.n('leaseExpiresAt')} = {expr.v(lease_until)}",
            f"{expr.n('updatedAt')} = {expr.v(now)}",
        ]
        if skip is not None:
            skipped = expr.n("skipped")
            sets.append(f"{skipped} = list_append(if_not_exists({skipped}, {expr.v([])}), {expr.v([skip])})")
        adds = [
            f"{expr.n('membersCreated')} {expr.v(members_created)}",
            f"{expr.n('messagesCreated')} {expr.v(messages_created)}",
        ]
        return self._conditional_update(
            ACTIVATIONS_TABLE, activation_key(activation_id), expr,
            _update_expression(sets, [], adds), condition,
        )

    def release_activation(self, activation_id: str, *, token: str, now: datetime) -> bool:
        expr = _Expr()
        condition = (
            f"{expr.n('status')} = {expr.v(ActivationStatus.PROCESSING)} AND "
            f"{expr.n('claimToken')} = {expr.v(token)}"
        )
        sets, removes = expr.assignments({"claim_token": None, "lease_expires_at": None, "updated_at": now})
        return self._conditional_update(
            ACTIVATIONS_TABLE, activation_key(activation_id), expr,
            _update_expression(sets, removes), condition,
        )

    def finish_activation(self, activation_id: str, *, token: str, status: str,
                          now: datetime, error: str = "") -> bool:
        ensure_activation_transition(ActivationStatus.PROCESSING, status)
        expr = _Expr()
        fields: dict[str, Any] = {
            "status": status,
            "updated_at": now,
            "error_message": error,
            "claim_token": None,
            "lease_expires_at": None,
        }
        if status == ActivationStatus.COMPLETED:
            fields["completed_at"] = now
        condition = (
            f"{expr.n('status')} = {expr.v(ActivationStatus.PROCESSING)} AND "
            f"{expr.n('claimToken')} = {expr.v(token)}"
        )
        sets, removes = expr.assignments(fields)
        return self._conditional_update(
            ACTIVATIONS_TABLE, activation_key(activation_id), expr,
            _update_expression(sets, removes), condition,
        )

    # ---- members ----

    def create_member(self, member: SequenceMember) -> bool:
        guard = {**_key(guard_key(member.sequence_id, member.target_id)), "memberId": member.id}
        return self._transact([
            {"Put": {
                "TableName": self._name(MEMBERS_TABLE),
                "Item": guard,
                "ConditionExpression": "attribute_not_exists(PK)",
            }},
            {"Put": {
                "TableName": self._name(MEMBERS_TABLE),
                "Item": to_item(member, *member_key(member.id)),
                "ConditionExpression": "attribute_not_exists(PK)",
            }},
        ], f"create member {member.id}")

    def get_member(self, member_id: str) -> SequenceMember | None:
        item = self._get_item(MEMBERS_TABLE, member_key(member_id))
        return from_item(SequenceMember, item, normalize_member) if item else None

    def find_active_member(self, sequence_id: str, target_id: str) -> SequenceMember | None:
        guard = self._get_item(MEMBERS_TABLE, guard_key(sequence_id, target_id))
        if guard is None:
            return None
        member = self.get_member(guard["memberId"])
        if member is None or member.status != MemberStatus.ACTIVE:
            logger.warning("Enrollment guard for %s/%s points at non-active member %s",
                           sequence_id, target_id, guard["memberId"])
            return None
        return member

    def iter_members(self, status: str, *, page_size: int = 25,
                     max_pages: int | None = None) -> Iterator[SequenceMember]:
        for item in self._query_status(MEMBERS_TABLE, status, "enrolledAt",
                                       page_size=page_size, max_pages=max_pages):
            yield from_item(SequenceMember, item, normalize_member)

    def _release_guard(self, member: SequenceMember) -> dict[str, Any]:
        return {"Delete": {
            "TableName": self._name(MEMBERS_TABLE),
            "Key": _key(guard_key(member.sequence_id, member.target_id)),
            "ConditionExpression": "attribute_not_exists(PK) OR memberId = :mid",
            "ExpressionAttributeValues": {":mid": member.id},
        }}

    def advance_member(self, member_id: str, *, expected_index: int, now: datetime,
                       complete: bool = False) -> bool:
        expr = _Expr()
        fields: dict[str, Any] = {"current_step_index": expected_index + 1, "updated_at": now}
        if complete:
            fields.update(status=MemberStatus.COMPLETED, completed_at=now)
        condition = (
            f"{expr.n('status')} = {expr.v(MemberStatus.ACTIVE)} AND "
            f"{expr.n('currentStepIndex')} = {expr.v(expected_index)}"
        )
        sets, removes = expr.assignments(fields)
        update = _update_expression(sets, removes)
        if not complete:
            return self._conditional_update(MEMBERS_TABLE, member_key(member_id), expr, update, condition)

        member = self.get_member(member_id)
        if member is None:
            return False
        return self._transact([
            {"Update": {
                "TableName": self._name(MEMBERS_TABLE),
                "Key": _key(member_key(member_id)),
                "UpdateExpression": update,
                "ConditionExpression": condition,
                **expr.kwargs(),
            }},
            self._release_guard(member),
        ], f"complete member {member_id}")

    def set_member_status(self, member_id: str, *, from_status: str, to_status: str,
                          now: datetime) -> bool:
        ensure_member_transition(from_status, to_status)
        member = self.get_member(member_id)
        if member is None:
            return False
        expr = _Expr()
        fields: dict[str, Any] = {"status": to_status, "updated_at": now}
        if to_status == MemberStatus.COMPLETED:
            fields["completed_at"] = now
        sets, removes = expr.assignments(fields)
        condition = f"{expr.n('status')} = {expr.v(from_status)}"
        items = [{"Update": {
            "TableName": self._name(MEMBERS_TABLE),
            "Key": _key(member_key(member_id)),
            "UpdateExpression": _update_expression(sets, removes),
            "ConditionExpression": condition,
            **expr.kwargs(),
        }}]
        if from_status == MemberStatus.ACTIVE:
            items.append(self._release_guard(member))
        return self._transact(items, f"member {member_id} {from_status}->{to_status}")

    # ---- messages ----

    def create_message(self, message: Message) -> bool:
        message_id = message_id_for(message.member_id, message.step_index)
        record = message.model_copy(update={"id": message_id})
        return self._put_item(
            MESSAGES_TABLE, to_item(record, *message_key(message_id)), "attribute_not_exists(PK)",
        )

    def get_message(self, message_id: str) -> Message | None:
        item = self._get_item(MESSAGES_TABLE, message_key(message_id))
        return from_item(Message, item, normalize_message) if item else None

    def get_step_message(self, member_id: str, step_index: int) -> Message | None:
        return self.get_message(message_id_for(member_id, step_index))

    def iter_messages(self, status: str, *, due_before: datetime | None = None,
                      page_size: int = 25, max_pages: int | None = None) -> Iterator[Message]:
        upper = to_epoch_ms(due_before) if due_before is not None else None
        for item in self._query_status(MESSAGES_TABLE, status, "scheduledSendTime", upper,
                                       page_size=page_size, max_pages=max_pages):
            yield from_item(Message, item, normalize_message)

    def transition_message(self, message_id: str, *, from_status: str, to_status: str,
                           now: datetime, expected_token: str | None = None,
                           new_token: str | None = None, lease_until: datetime | None = None,
                           updates: dict[str, Any] | None = None) -> bool:
        ensure_message_transition(from_status, to_status)
        expr = _Expr()
        fields = dict(updates or {})
        fields.update(
            status=to_status,
            updated_at=now,
            claim_token=new_token,
            lease_expires_at=lease_until if new_token else None,
        )
        condition = f"{expr.n('status')} = {expr.v(from_status)}"
        if expected_token is not None:
            condition += f" AND {expr.n('claimToken')} = {expr.v(expected_token)}"
        sets, removes = expr.assignments(fields)
        return self._conditional_update(
            MESSAGES_TABLE, message_key(message_id), expr,
            _update_expression(sets, removes), condition,
        )

    def lease_message(self, message_id: str, *, status: str, token: str, now: datetime,
                      lease_until: datetime) -> bool:
        expr = _Expr()
        lease = expr.n("leaseExpiresAt")
        condition = (
            f"{expr.n('status')} = {expr.v(status)} AND "
            f"(attribute_not_exists({expr.n('claimToken')}) OR attribute_not_exists({lease}) "
            f"OR {lease} < {expr.v(now)})"
        )
        sets, _ = expr.assignments({"claim_token": token, "lease_expires_at": lease_until, "updated_at": now})
        return self._conditional_update(
            MESSAGES_TABLE, message_key(message_id), expr, _update_expression(sets, []), condition,
        )

    def release_message(self, message_id: str, *, status: str, token: str, now: datetime,
                        updates: dict[str, Any] | None = None) -> bool:
        expr = _Expr()
        fields = dict(updates or {})
        fields.update(claim_token=None, lease_expires_at=None, updated_at=now)
        condition = (
            f"{expr.n('status')} = {expr.v(status)} AND "
            f"{expr.n('claimToken')} = {expr.v(token)}"
        )
        sets, removes = expr.assignments(fields)
        return self._conditional_update(
            MESSAGES_TABLE, message_key(message_id), expr,
            _update_expression(sets, removes), condition,
        )


def _normalize_target(item: dict[str, Any]) -> dict[str, Any]:
    out = dict(item)
    if not out.get("company") and out.get("companyName"):
        out["company"] = out["companyName"]
    out.pop("companyName", None)
    return out


class DynamoDBTargetDirectory:
    """ITargetDirectory over the CRM contact projection table."""

    def __init__(self, table_suffix: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._table = boto3.resource("dynamodb", **kwargs).Table(f"{TARGETS_TABLE}{table_suffix}")

    def get_target(self, target_id: str) -> TargetProfile | None:
        try:
            resp = self._table.get_item(Key={"PK": f"TARGET#{target_id}", "SK": "PROFILE"})
        except ClientError as exc:
            raise StoreError(f"Target lookup failed for {target_id!r}: {exc}") from exc
        item = resp.get("Item")
        if item is None:
            return None
        return from_item(TargetProfile, {**item, "id": target_id}, _normalize_target)

    def put_target(self, target: TargetProfile) -> None:
        self._table.put_item(Item=to_item(target, f"TARGET#{target.id}", "PROFILE"))
