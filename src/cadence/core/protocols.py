"""Protocol interfaces for all Cadence abstractions.

Workers depend only on these Protocols; the in-memory and DynamoDB/Redis/SES
backends satisfy them structurally.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterator, Protocol, runtime_checkable

from cadence.models.pipeline import (
    Message,
    SequenceActivation,
    SequenceMember,
    SkipReason,
)
from cadence.models.sequence import Sequence
from cadence.models.target import TargetProfile


# ---------------------------------------------------------------------------
# Model Provider (content generation service)
# ---------------------------------------------------------------------------

@runtime_checkable
class IModelProvider(Protocol):
    """Abstraction over LLM providers (mock, Bedrock)."""

    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str: ...


# ---------------------------------------------------------------------------
# Delivery Service
# ---------------------------------------------------------------------------

@runtime_checkable
class IDeliveryService(Protocol):
    """Outbound send. Returns a provider delivery id or raises DeliveryError."""

    def send(self, *, to: str, subject: str, body: str, html: str = "",
             metadata: dict[str, str] | None = None) -> str: ...


# ---------------------------------------------------------------------------
# Target Directory (CRM contacts/accounts)
# ---------------------------------------------------------------------------

@runtime_checkable
class ITargetDirectory(Protocol):
    def get_target(self, target_id: str) -> TargetProfile | None: ...


# ---------------------------------------------------------------------------
# Persistence: Cache Backend
# ---------------------------------------------------------------------------

@runtime_checkable
class ICacheBackend(Protocol):
    """Redis-compatible cache interface."""

    def get(self, key: str) -> str | None: ...

    def setex(self, key: str, ttl: int, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


# ---------------------------------------------------------------------------
# Notification Channel
# ---------------------------------------------------------------------------

@runtime_checkable
class IEventPublisher(Protocol):
    """Topic-based notifications the UI subscribes to instead of polling flags."""

    def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


# ---------------------------------------------------------------------------
# Persistence: Sequence Store
# ---------------------------------------------------------------------------

@runtime_checkable
class ISequenceStore(Protocol):
    """Shared persistent store. Every status change is a conditional write.

    Claim-style methods return ``False`` when the record was not in the
    expected state or another worker holds its lease; they never raise for
    a lost race.
    """

    # -- sequences --
    def put_sequence(self, sequence: Sequence) -> None: ...

    def get_sequence(self, sequence_id: str) -> Sequence | None: ...

    # -- activations --
    def put_activation(self, activation: SequenceActivation) -> None: ...

    def get_activation(self, activation_id: str) -> SequenceActivation | None: ...

    def iter_activations(self, status: str, *, page_size: int = 25,
                         max_pages: int | None = None) -> Iterator[SequenceActivation]: ...

    def claim_activation(self, activation_id: str, *, token: str, now: datetime,
                         lease_until: datetime, reclaim_expired: bool = True) -> bool: ...

    def checkpoint_activation(self, activation_id: str, *, token: str, expected_count: int,
                              now: datetime, lease_until: datetime,
                              skip: SkipReason | None = None, members_created: int = 0,
                              messages_created: int = 0) -> bool: ...

    def release_activation(self, activation_id: str, *, token: str, now: datetime) -> bool: ...

    def finish_activation(self, activation_id: str, *, token: str, status: str,
                          now: datetime, error: str = "") -> bool: ...

    # -- members --
    def create_member(self, member: SequenceMember) -> bool: ...

    def get_member(self, member_id: str) -> SequenceMember | None: ...

    def find_active_member(self, sequence_id: str, target_id: str) -> SequenceMember | None: ...

    def iter_members(self, status: str, *, page_size: int = 25,
                     max_pages: int | None = None) -> Iterator[SequenceMember]: ...

    def advance_member(self, member_id: str, *, expected_index: int, now: datetime,
                       complete: bool = False) -> bool: ...

    def set_member_status(self, member_id: str, *, from_status: str, to_status: str,
                          now: datetime) -> bool: ...

    # -- messages --
    def create_message(self, message: Message) -> bool: ...

    def get_message(self, message_id: str) -> Message | None: ...

    def get_step_message(self, member_id: str, step_index: int) -> Message | None: ...

    def iter_messages(self, status: str, *, due_before: datetime | None = None,
                      page_size: int = 25, max_pages: int | None = None) -> Iterator[Message]: ...

    def transition_message(self, message_id: str, *, from_status: str, to_status: str,
                           now: datetime, expected_token: str | None = None,
                           new_token: str | None = None, lease_until: datetime | None = None,
                           updates: dict[str, Any] | None = None) -> bool: ...

    def lease_message(self, message_id: str, *, status: str, token: str, now: datetime,
                      lease_until: datetime) -> bool: ...

    def release_message(self, message_id: str, *, status: str, token: str, now: datetime,
                        updates: dict[str, Any] | None = None) -> bool: ...
