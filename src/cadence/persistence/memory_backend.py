"""In-memory backends for unit tests — dict-backed fakes.

``MemorySequenceStore`` holds one lock around every operation so its
conditional writes are atomic the same way DynamoDB condition expressions
are; concurrent-worker tests rely on that.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Iterator

from cadence.models.pipeline import (
    ActivationStatus,
    MemberStatus,
    Message,
    MessageStatus,
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


def _paginate(items: list[Any], page_size: int, max_pages: int | None) -> Iterator[Any]:
    limit = None if max_pages is None else page_size * max_pages
    for n, item in enumerate(items):
        if limit is not None and n >= limit:
            return
        yield item


class MemorySequenceStore:
    """Dict-backed ISequenceStore for unit tests."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sequences: dict[str, Sequence] = {}
        self._activations: dict[str, SequenceActivation] = {}
        self._members: dict[str, SequenceMember] = {}
        self._guards: dict[tuple[str, str], str] = {}
        self._messages: dict[str, Message] = {}

    # ---- sequences ----

    def put_sequence(self, sequence: Sequence) -> None:
        with self._lock:
            self._sequences[sequence.id] = sequence.model_copy(deep=True)

    def get_sequence(self, sequence_id: str) -> Sequence | None:
        with self._lock:
            seq = self._sequences.get(sequence_id)
            return seq.model_copy(deep=True) if seq else None

    # ---- activations ----

    def put_activation(self, activation: SequenceActivation) -> None:
        with self._lock:
            self._activations[activation.id] = activation.model_copy(deep=True)

    def get_activation(self, activation_id: str) -> SequenceActivation | None:
        with self._lock:
            act = self._activations.get(activation_id)
            return act.model_copy(deep=True) if act else None

    def iter_activations(self, status: str, *, page_size: int = 25,
                         max_pages: int | None = None) -> Iterator[SequenceActivation]:
        with self._lock:
            rows = sorted(
                (a.model_copy(deep=True) for a in self._activations.values() if a.status == status),
                key=lambda a: a.created_at,
            )
        yield from _paginate(rows, page_size, max_pages)

    def claim_activation(self, activation_id: str, *, token: str, now: datetime,
                         lease_until: datetime, reclaim_expired: bool = True) -> bool:
        with self._lock:
            act = self._activations.get(activation_id)
            if act is None:
                return False
            if act.status == ActivationStatus.PENDING:
                pass
            elif act.status == ActivationStatus.PROCESSING:
                if act.claim_token is not None and not (
                    reclaim_expired and (act.lease_expires_at is None or act.lease_expires_at < now)
                ):
                    return False
            else:
                return False
            ensure_activation_transition(act.status, ActivationStatus.PROCESSING)
            self._activations[activation_id] = act.model_copy(update={
                "status": ActivationStatus.PROCESSING,
                "claim_token": token,
                "lease_expires_at": lease_until,
                "processing_started_at": act.processing_started_at or now,
                "attempt_count": act.attempt_count + 1,
                "updated_at": now,
            })
            return True

    def checkpoint_activation(self, activation_id: str, *, token: str, expected_count: int,
                              now: datetime, lease_until: datetime,
                              skip: SkipReason | None = None, members_created: int = 0,
                              messages_created: int = 0) -> bool:
        with self._lock:
            act = self._activations.get(activation_id)
            if (act is None or act.status != ActivationStatus.PROCESSING
                    or act.claim_token != token or act.processed_count != expected_count
                    or expected_count >= len(act.target_ids)):
                return False
            skipped = list(act.skipped)
            if skip is not None:
                skipped.append(skip)
            self._activations[activation_id] = act.model_copy(update={
                "processed_count": expected_count + 1,
                "lease_expires_at": lease_until,
                "members_created": act.members_created + members_created,
                "messages_created": act.messages_created + messages_created,
                "skipped": skipped,
                "updated_at": now,
            })
            return True

    def release_activation(self, activation_id: str, *, token: str, now: datetime) -> bool:
        with self._lock:
            act = self._activations.get(activation_id)
            if act is None or act.status != ActivationStatus.PROCESSING or act.claim_token != token:
                return False
            self._activations[activation_id] = act.model_copy(update={
                "claim_token": None, "lease_expires_at": None, "updated_at": now,
            })
            return True

    def finish_activation(self, activation_id: str, *, token: str, status: str,
                          now: datetime, error: str = "") -> bool:
        with self._lock:
            act = self._activations.get(activation_id)
            if act is None or act.status != ActivationStatus.PROCESSING or act.claim_token != token:
                return False
            ensure_activation_transition(act.status, status)
            self._activations[activation_id] = act.model_copy(update={
                "status": ActivationStatus(status),
                "claim_token": None,
                "lease_expires_at": None,
                "completed_at": now if status == ActivationStatus.COMPLETED else act.completed_at,
                "error_message": error,
                "updated_at": now,
            })
            return True

    # ---- members ----

    def create_member(self, member: SequenceMember) -> bool:
        with self._lock:
            key = (member.sequence_id, member.target_id)
            if key in self._guards or member.id in self._members:
                return False
            self._guards[key] = member.id
            self._members[member.id] = member.model_copy(deep=True)
            return True

    def get_member(self, member_id: str) -> SequenceMember | None:
        with self._lock:
            mem = self._members.get(member_id)
            return mem.model_copy(deep=True) if mem else None

    def find_active_member(self, sequence_id: str, target_id: str) -> SequenceMember | None:
        with self._lock:
            member_id = self._guards.get((sequence_id, target_id))
            if member_id is None:
                return None
            mem = self._members.get(member_id)
            if mem is None or mem.status != MemberStatus.ACTIVE:
                return None
            return mem.model_copy(deep=True)

    def iter_members(self, status: str, *, page_size: int = 25,
                     max_pages: int | None = None) -> Iterator[SequenceMember]:
        with self._lock:
            rows = sorted(
                (m.model_copy(deep=True) for m in self._members.values() if m.status == status),
                key=lambda m: m.enrolled_at,
            )
        yield from _paginate(rows, page_size, max_pages)

    def advance_member(self, member_id: str, *, expected_index: int, now: datetime,
                       complete: bool = False) -> bool:
        with self._lock:
            mem = self._members.get(member_id)
            if (mem is None or mem.status != MemberStatus.ACTIVE
                    or mem.current_step_index != expected_index):
                return False
            update: dict[str, Any] = {"current_step_index": expected_index + 1, "updated_at": now}
            if complete:
                update.update(status=MemberStatus.COMPLETED, completed_at=now)
                self._guards.pop((mem.sequence_id, mem.target_id), None)
            self._members[member_id] = mem.model_copy(update=update)
            return True

    def set_member_status(self, member_id: str, *, from_status: str, to_status: str,
                          now: datetime) -> bool:
        ensure_member_transition(from_status, to_status)
        with self._lock:
            mem = self._members.get(member_id)
            if mem is None or mem.status != from_status:
                return False
            update: dict[str, Any] = {"status": MemberStatus(to_status), "updated_at": now}
            if to_status == MemberStatus.COMPLETED:
                update["completed_at"] = now
            if from_status == MemberStatus.ACTIVE:
                self._guards.pop((mem.sequence_id, mem.target_id), None)
            self._members[member_id] = mem.model_copy(update=update)
            return True

    # ---- messages ----

    def create_message(self, message: Message) -> bool:
        with self._lock:
            key = message_id_for(message.member_id, message.step_index)
            if key in self._messages:
                return False
            self._messages[key] = message.model_copy(deep=True, update={"id": key})
            return True

    def get_message(self, message_id: str) -> Message | None:
        with self._lock:
            msg = self._messages.get(message_id)
            return msg.model_copy(deep=True) if msg else None

    def get_step_message(self, member_id: str, step_index: int) -> Message | None:
        return self.get_message(message_id_for(member_id, step_index))

    def iter_messages(self, status: str, *, due_before: datetime | None = None,
                      page_size: int = 25, max_pages: int | None = None) -> Iterator[Message]:
        with self._lock:
            rows = sorted(
                (
                    m.model_copy(deep=True) for m in self._messages.values()
                    if m.status == status
                    and (due_before is None or m.scheduled_send_time <= due_before)
                ),
                key=lambda m: m.scheduled_send_time,
            )
        yield from _paginate(rows, page_size, max_pages)

    def transition_message(self, message_id: str, *, from_status: str, to_status: str,
                           now: datetime, expected_token: str | None = None,
                           new_token: str | None = None, lease_until: datetime | None = None,
                           updates: dict[str, Any] | None = None) -> bool:
        ensure_message_transition(from_status, to_status)
        with self._lock:
            msg = self._messages.get(message_id)
            if msg is None or msg.status != from_status:
                return False
            if expected_token is not None and msg.claim_token != expected_token:
                return False
            update = dict(updates or {})
            update.update(
                status=MessageStatus(to_status),
                claim_token=new_token,
                lease_expires_at=lease_until if new_token else None,
                updated_at=now,
            )
            self._messages[message_id] = msg.model_copy(update=update)
            return True

    def lease_message(self, message_id: str, *, status: str, token: str, now: datetime,
                      lease_until: datetime) -> bool:
        with self._lock:
            msg = self._messages.get(message_id)
            if msg is None or msg.status != status:
                return False
            if msg.claim_token is not None and msg.lease_expires_at is not None \
                    and msg.lease_expires_at >= now:
                return False
            self._messages[message_id] = msg.model_copy(update={
                "claim_token": token, "lease_expires_at": lease_until, "updated_at": now,
            })
            return True

    def release_message(self, message_id: str, *, status: str, token: str, now: datetime,
                        updates: dict[str, Any] | None = None) -> bool:
        with self._lock:
            msg = self._messages.get(message_id)
            if msg is None or msg.status != status or msg.claim_token != token:
                return False
            update = dict(updates or {})
            update.update(claim_token=None, lease_expires_at=None, updated_at=now)
            self._messages[message_id] = msg.model_copy(update=update)
            return True

    # ---- test helpers ----

    def all_messages(self) -> list[Message]:
        with self._lock:
            return [m.model_copy(deep=True) for m in self._messages.values()]

    def all_members(self) -> list[SequenceMember]:
        with self._lock:
            return [m.model_copy(deep=True) for m in self._members.values()]

    def put_message(self, message: Message) -> None:
        """Write a message verbatim, bypassing the create guard (fixtures only)."""
        with self._lock:
            self._messages[message.id] = message.model_copy(deep=True)


class MemoryCacheBackend:
    """Dict-backed ICacheBackend for unit tests."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> None:
        self._store[key] = value

    def delete(self, key: str) -> None:
        self._store.pop(key, None)


class MemoryEventPublisher:
    """Records published events in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        self.events.append((topic, dict(payload)))

    def topics(self) -> list[str]:
        return [topic for topic, _ in self.events]


class MemoryTargetDirectory:
    """Dict-backed ITargetDirectory for unit tests."""

    def __init__(self, targets: list[TargetProfile] | None = None) -> None:
        self._targets: dict[str, TargetProfile] = {t.id: t for t in targets or []}

    def add(self, target: TargetProfile) -> None:
        self._targets[target.id] = target

    def get_target(self, target_id: str) -> TargetProfile | None:
        return self._targets.get(target_id)
