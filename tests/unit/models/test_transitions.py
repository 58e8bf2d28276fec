"""Tests for the status transition graphs."""

from __future__ import annotations

import random

import pytest

from cadence.core.exceptions import InvalidTransitionError
from cadence.models.pipeline import ActivationStatus, MemberStatus, MessageStatus
from cadence.models.transitions import (
    MESSAGE_TRANSITIONS,
    can_transition_message,
    ensure_activation_transition,
    ensure_member_transition,
    ensure_message_transition,
)

FORWARD = [
    (MessageStatus.NOT_GENERATED, MessageStatus.GENERATING),
    (MessageStatus.GENERATING, MessageStatus.PENDING_APPROVAL),
    (MessageStatus.PENDING_APPROVAL, MessageStatus.APPROVED),
    (MessageStatus.APPROVED, MessageStatus.SENT),
    (MessageStatus.APPROVED, MessageStatus.FAILED),
]
BACK_EDGES = {(MessageStatus.GENERATING, MessageStatus.NOT_GENERATED)}
ORDER = list(MessageStatus)


class TestMessageGraph:
    @pytest.mark.parametrize("src,dst", FORWARD)
    def test_forward_edges_allowed(self, src, dst):
        ensure_message_transition(src, dst)

    def test_retry_back_edge_allowed(self):
        assert can_transition_message("generating", "not_generated")

    @pytest.mark.parametrize("src,dst", [
        ("not_generated", "approved"),
        ("pending_approval", "sent"),
        ("sent", "approved"),
        ("failed", "approved"),
        ("approved", "pending_approval"),
    ])
    def test_illegal_edges_raise(self, src, dst):
        with pytest.raises(InvalidTransitionError):
            ensure_message_transition(src, dst)

    def test_terminal_states_have_no_exits(self):
        assert MESSAGE_TRANSITIONS[MessageStatus.SENT] == frozenset()
        assert MESSAGE_TRANSITIONS[MessageStatus.FAILED] == frozenset()

    def test_only_listed_edges_exist(self):
        edges = {(s, d) for s, dsts in MESSAGE_TRANSITIONS.items() for d in dsts}
        assert edges == set(FORWARD) | BACK_EDGES

    def test_random_walks_stay_on_graph(self):
        rng = random.Random(7)
        for _ in range(500):
            state = MessageStatus.NOT_GENERATED
            for _ in range(12):
                proposed = rng.choice(ORDER)
                if can_transition_message(state, proposed):
                    assert (state, proposed) in set(FORWARD) | BACK_EDGES
                    # everything except the retry edge moves forward
                    if (state, proposed) not in BACK_EDGES:
                        assert ORDER.index(proposed) > ORDER.index(state)
                    state = proposed
                else:
                    with pytest.raises(InvalidTransitionError):
                        ensure_message_transition(state, proposed)


class TestActivationAndMemberGraphs:
    def test_activation_reclaim_allowed(self):
        ensure_activation_transition(ActivationStatus.PROCESSING, ActivationStatus.PROCESSING)

    def test_activation_cannot_leave_completed(self):
        with pytest.raises(InvalidTransitionError):
            ensure_activation_transition(ActivationStatus.COMPLETED, ActivationStatus.PROCESSING)

    def test_pending_cannot_complete_without_processing(self):
        with pytest.raises(InvalidTransitionError):
            ensure_activation_transition(ActivationStatus.PENDING, ActivationStatus.COMPLETED)

    def test_member_removed_is_terminal(self):
        ensure_member_transition(MemberStatus.ACTIVE, MemberStatus.REMOVED)
        with pytest.raises(InvalidTransitionError):
            ensure_member_transition(MemberStatus.REMOVED, MemberStatus.ACTIVE)
