"""Allowed status transitions. Every store write that changes a status goes through here."""

from __future__ import annotations

from cadence.core.exceptions import InvalidTransitionError
from cadence.models.pipeline import ActivationStatus, MemberStatus, MessageStatus

MESSAGE_TRANSITIONS: dict[MessageStatus, frozenset[MessageStatus]] = {
    MessageStatus.NOT_GENERATED: frozenset({MessageStatus.GENERATING}),
    MessageStatus.GENERATING: frozenset({MessageStatus.PENDING_APPROVAL, MessageStatus.NOT_GENERATED}),
    MessageStatus.PENDING_APPROVAL: frozenset({MessageStatus.APPROVED}),
    MessageStatus.APPROVED: frozenset({MessageStatus.SENT, MessageStatus.FAILED}),
    MessageStatus.SENT: frozenset(),
    MessageStatus.FAILED: frozenset(),
}

ACTIVATION_TRANSITIONS: dict[ActivationStatus, frozenset[ActivationStatus]] = {
    ActivationStatus.PENDING: frozenset({ActivationStatus.PROCESSING}),
    # processing -> processing is a re-claim of an expired lease
    ActivationStatus.PROCESSING: frozenset({
        ActivationStatus.PROCESSING, ActivationStatus.COMPLETED, ActivationStatus.FAILED,
    }),
    ActivationStatus.COMPLETED: frozenset(),
    ActivationStatus.FAILED: frozenset(),
}

MEMBER_TRANSITIONS: dict[MemberStatus, frozenset[MemberStatus]] = {
    MemberStatus.ACTIVE: frozenset({MemberStatus.COMPLETED, MemberStatus.REMOVED}),
    MemberStatus.COMPLETED: frozenset(),
    MemberStatus.REMOVED: frozenset(),
}


def can_transition_message(from_status: str, to_status: str) -> bool:
    return MessageStatus(to_status) in MESSAGE_TRANSITIONS[MessageStatus(from_status)]


def ensure_message_transition(from_status: str, to_status: str) -> None:
    if not can_transition_message(from_status, to_status):
        raise InvalidTransitionError("Message", str(from_status), str(to_status))


def ensure_activation_transition(from_status: str, to_status: str) -> None:
    if ActivationStatus(to_status) not in ACTIVATION_TRANSITIONS[ActivationStatus(from_status)]:
        raise InvalidTransitionError("SequenceActivation", str(from_status), str(to_status))


def ensure_member_transition(from_status: str, to_status: str) -> None:
    if MemberStatus(to_status) not in MEMBER_TRANSITIONS[MemberStatus(from_status)]:
        raise InvalidTransitionError("SequenceMember", str(from_status), str(to_status))
