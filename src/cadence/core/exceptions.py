"""Cadence exception hierarchy."""

from __future__ import annotations


class CadenceError(Exception):
    """Base exception for all Cadence errors."""


class StoreError(CadenceError):
    """Persistent store operation failed."""


class RecordNotFoundError(CadenceError):
    """A record addressed by id does not exist."""

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id!r} not found")


class SequenceNotFoundError(RecordNotFoundError):
    """Sequence definition not found."""

    def __init__(self, sequence_id: str) -> None:
        super().__init__("Sequence", sequence_id)


class InvalidTransitionError(CadenceError):
    """A status change outside the allowed transition graph was attempted."""

    def __init__(self, kind: str, from_status: str, to_status: str) -> None:
        self.kind = kind
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"{kind} cannot move from {from_status!r} to {to_status!r}")


class ClaimConflictError(CadenceError):
    """The record was not in the expected state, or another worker holds it."""

    def __init__(self, record_id: str, message: str = "") -> None:
        self.record_id = record_id
        super().__init__(message or f"Record {record_id!r} is held or has moved on")


class GenerationError(CadenceError):
    """Content generation service call failed or returned unusable content."""


class DeliveryError(CadenceError):
    """Delivery service rejected or failed to send a message."""


class CacheError(CadenceError):
    """Redis cache operation failed."""


class EventPublishError(CadenceError):
    """Publishing a pipeline event failed."""


class InvalidContentError(CadenceError):
    """Message content is missing or empty where a send-ready draft is required."""


class SequenceInactiveError(CadenceError):
    """The sequence is archived or paused and cannot take new work."""

    def __init__(self, sequence_id: str, status: str) -> None:
        self.sequence_id = sequence_id
        self.status = status
        super().__init__(f"Sequence {sequence_id!r} is {status}")
