"""Order state machine: transitions, ownership, terminal states and shared labels."""
from __future__ import annotations

import pytest

from escrow_harness.engine import machine as m
from escrow_harness.engine.machine import DEFAULT_MACHINE
from escrow_harness.errors import IllegalTransitionError, RoleViolationError
from escrow_harness.types import Role


# ═══════════════════════════════════════════════════════
# Scenario 1: Legal transitions
# ═══════════════════════════════════════════════════════

def test_s1_release_path():
    sm = DEFAULT_MACHINE
    state = sm.apply(m.START, "create_order", Role.BUYER)
    assert state == m.CREATED
    state = sm.apply(state, "escrow", Role.SELLER)
    assert state == m.ESCROWED
    state = sm.apply(state, "release", Role.SELLER)
    assert state == m.RELEASED
    state = sm.apply(state, "claim", Role.BUYER)
    assert state == m.CLAIMED
    assert sm.settle(state) == m.COMPLETED


def test_s1_dispute_paths():
    sm = DEFAULT_MACHINE
    disputed = sm.apply(m.ESCROWED, "dispute", Role.SELLER)
    assert disputed == m.DISPUTED
    assert sm.apply(disputed, "resolve_release_to_buyer", Role.ARBITRATOR) == m.RESOLVED_RELEASED_TO_BUYER
    assert sm.apply(disputed, "resolve_return_to_seller", Role.ARBITRATOR) == m.RESOLVED_RETURNED_TO_SELLER
    assert sm.apply(m.RESOLVED_RELEASED_TO_BUYER, "claim", Role.BUYER) == m.CLAIMED
    claimed_back = sm.apply(m.RESOLVED_RETURNED_TO_SELLER, "claim_back", Role.SELLER)
    assert claimed_back == m.CLAIMED_BACK
    assert sm.settle(claimed_back) == m.CANCELLED


def test_s1_settle_once_stops_at_actor_states():
    sm = DEFAULT_MACHINE
    assert sm.settle_once(m.CLAIMED) == m.COMPLETED
    assert sm.settle_once(m.CLAIMED_BACK) == m.CANCELLED
    assert sm.settle_once(m.ESCROWED) is None
    assert sm.settle(m.ESCROWED) == m.ESCROWED


# ═══════════════════════════════════════════════════════
# Scenario 2: Role gating
# ═══════════════════════════════════════════════════════

@pytest.mark.parametrize("action,state,wrong", [
    ("escrow", m.CREATED, Role.BUYER),
    ("escrow", m.CREATED, Role.ARBITRATOR),
    ("release", m.ESCROWED, Role.BUYER),
    ("dispute", m.ESCROWED, Role.ARBITRATOR),
    ("resolve_release_to_buyer", m.DISPUTED, Role.SELLER),
    ("resolve_return_to_seller", m.DISPUTED, Role.BUYER),
    ("claim", m.RELEASED, Role.SELLER),
    ("claim_back", m.RESOLVED_RETURNED_TO_SELLER, Role.BUYER),
    ("claim_back_fee", m.COMPLETED, Role.BUYER),
])
def test_s2_wrong_role_rejected(action, state, wrong):
    with pytest.raises(RoleViolationError):
        DEFAULT_MACHINE.apply(state, action, wrong)


def test_s2_system_transition_is_not_an_actor_action():
    with pytest.raises(RoleViolationError, match="not an actor action"):
        DEFAULT_MACHINE.apply(m.CLAIMED, "settle", Role.BUYER)


def test_s2_capabilities_per_role():
    caps = DEFAULT_MACHINE.capabilities
    assert caps[Role.BUYER].actions == {"create_order", "claim"}
    assert caps[Role.SELLER].actions == {
        "escrow", "release", "dispute", "claim_back", "create_offer", "claim_back_fee", "donate_fee",
    }
    assert caps[Role.ARBITRATOR].actions == {"resolve_release_to_buyer", "resolve_return_to_seller"}
    assert DEFAULT_MACHINE.required_inputs(Role.SELLER, "dispute") == ("reason",)
    assert DEFAULT_MACHINE.required_inputs(Role.BUYER, "claim") == ()


# ═══════════════════════════════════════════════════════
# Scenario 3: Illegal transitions and terminal states
# ═══════════════════════════════════════════════════════

def test_s3_release_before_escrow_rejected():
    with pytest.raises(IllegalTransitionError, match="not a legal transition from Created"):
        DEFAULT_MACHINE.apply(m.CREATED, "release", Role.SELLER)


@pytest.mark.parametrize("terminal", [m.COMPLETED, m.CANCELLED])
def test_s3_terminal_rejects_every_transition(terminal):
    sm = DEFAULT_MACHINE
    assert sm.is_terminal(terminal)
    for t in sm.transitions:
        if t.role is None:
            continue
        with pytest.raises(IllegalTransitionError):
            sm.apply(terminal, t.action, t.role)


def test_s3_unknown_action():
    with pytest.raises(IllegalTransitionError, match="Unknown action"):
        DEFAULT_MACHINE.owner("refund")


def test_s3_claimed_is_not_terminal():
    assert not DEFAULT_MACHINE.is_terminal(m.CLAIMED)
    assert not DEFAULT_MACHINE.is_terminal(m.CLAIMED_BACK)


# ═══════════════════════════════════════════════════════
# Scenario 4: Side actions
# ═══════════════════════════════════════════════════════

def test_s4_fee_actions_keep_completed():
    sm = DEFAULT_MACHINE
    assert sm.apply(m.COMPLETED, "claim_back_fee", Role.SELLER) == m.COMPLETED
    assert sm.apply(m.COMPLETED, "donate_fee", Role.SELLER) == m.COMPLETED
    assert sm.is_side_action("donate_fee")
    assert not sm.is_side_action("claim")


def test_s4_fee_actions_only_after_completed():
    with pytest.raises(IllegalTransitionError, match="only legal in Completed"):
        DEFAULT_MACHINE.apply(m.RELEASED, "claim_back_fee", Role.SELLER)


def test_s4_create_offer_needs_no_order():
    assert DEFAULT_MACHINE.apply(m.START, "create_offer", Role.SELLER) == m.START


# ═══════════════════════════════════════════════════════
# Scenario 5: Labels and reachability
# ═══════════════════════════════════════════════════════

def test_s5_shared_labels():
    sm = DEFAULT_MACHINE
    assert sm.label(m.CREATED) == "Pending"
    assert sm.states_for_label("Released") == {m.RELEASED, m.RESOLVED_RELEASED_TO_BUYER}
    assert sm.states_for_label("completed") == {m.CLAIMED, m.COMPLETED}
    assert sm.states_for_label("Cancelled") == {m.CLAIMED_BACK, m.CANCELLED}
    assert sm.states_for_label("Returned") == {m.RESOLVED_RETURNED_TO_SELLER}
    assert sm.states_for_label("Refunded") == set()


def test_s5_reachability_is_forward_only():
    sm = DEFAULT_MACHINE
    assert sm.is_forward(m.CREATED, m.CREATED)
    assert sm.is_forward(m.CREATED, m.COMPLETED)
    assert sm.is_forward(m.ESCROWED, m.CANCELLED)
    assert not sm.is_forward(m.ESCROWED, m.CREATED)
    assert not sm.is_forward(m.RELEASED, m.CANCELLED)
    assert not sm.is_forward(m.RESOLVED_RETURNED_TO_SELLER, m.COMPLETED)
    assert sm.reachable(m.COMPLETED) == {m.COMPLETED}


def test_s5_custom_labels():
    sm = m.OrderStateMachine(labels={**m.LABELS, m.CREATED: "Open"})
    assert sm.label(m.CREATED) == "Open"
    assert sm.states_for_label("Pending") == set()
    # the shared default machine is untouched
    assert DEFAULT_MACHINE.label(m.CREATED) == "Pending"
