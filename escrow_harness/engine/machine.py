"""Order state machine: legal states, transitions, owners and status labels.

The graph is the single source of truth for three things: which action
moves an order out of a state, which role is allowed to take it, and how
each state renders as ``Status: <label>`` text in an actor's session.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from escrow_harness.errors import IllegalTransitionError, RoleViolationError
from escrow_harness.types import Role

# ─── States ───

START = "Start"  # before any order exists
CREATED = "Created"
ESCROWED = "Escrowed"
DISPUTED = "Disputed"
RELEASED = "Released"
RESOLVED_RELEASED_TO_BUYER = "ResolvedReleasedToBuyer"
RESOLVED_RETURNED_TO_SELLER = "ResolvedReturnedToSeller"
CLAIMED = "Claimed"
CLAIMED_BACK = "ClaimedBack"
COMPLETED = "Completed"
CANCELLED = "Cancelled"

STATES = (
    START, CREATED, ESCROWED, DISPUTED, RELEASED, RESOLVED_RELEASED_TO_BUYER,
    RESOLVED_RETURNED_TO_SELLER, CLAIMED, CLAIMED_BACK, COMPLETED, CANCELLED,
)
TERMINAL = frozenset({COMPLETED, CANCELLED})

# Rendered "Status: <label>" per state. Several states share a label; a
# label therefore identifies a set of candidate states, never one.
LABELS = {
    CREATED: "Pending",
    ESCROWED: "Escrowed",
    DISPUTED: "Disputed",
    RELEASED: "Released",
    RESOLVED_RELEASED_TO_BUYER: "Released",
    RESOLVED_RETURNED_TO_SELLER: "Returned",
    CLAIMED: "Completed",
    CLAIMED_BACK: "Cancelled",
    COMPLETED: "Completed",
    CANCELLED: "Cancelled",
}

SYSTEM = None  # owner of transitions no actor triggers


@dataclass(frozen=True)
class Transition:
    source: str
    action: str
    target: str
    role: Role | None
    inputs: tuple[str, ...] = ()


@dataclass(frozen=True)
class SideAction:
    """An action that is legal in a state but does not move the order."""
    action: str
    state: str
    role: Role
    inputs: tuple[str, ...] = ()


TRANSITIONS = (
    Transition(START, "create_order", CREATED, Role.BUYER, ("offer_id",)),
    Transition(CREATED, "escrow", ESCROWED, Role.SELLER),
    Transition(ESCROWED, "release", RELEASED, Role.SELLER),
    Transition(ESCROWED, "dispute", DISPUTED, Role.SELLER, ("reason",)),
    Transition(DISPUTED, "resolve_release_to_buyer", RESOLVED_RELEASED_TO_BUYER, Role.ARBITRATOR, ("counterparty",)),
    Transition(DISPUTED, "resolve_return_to_seller", RESOLVED_RETURNED_TO_SELLER, Role.ARBITRATOR, ("counterparty",)),
    Transition(RELEASED, "claim", CLAIMED, Role.BUYER),
    Transition(RESOLVED_RELEASED_TO_BUYER, "claim", CLAIMED, Role.BUYER),
    Transition(RESOLVED_RETURNED_TO_SELLER, "claim_back", CLAIMED_BACK, Role.SELLER),
    Transition(CLAIMED, "settle", COMPLETED, SYSTEM),
    Transition(CLAIMED_BACK, "settle", CANCELLED, SYSTEM),
)

SIDE_ACTIONS = (
    SideAction("create_offer", START, Role.SELLER),
    SideAction("claim_back_fee", COMPLETED, Role.SELLER),
    SideAction("donate_fee", COMPLETED, Role.SELLER),
)


@dataclass
class Capability:
    actions: set[str] = field(default_factory=set)
    inputs: dict[str, tuple[str, ...]] = field(default_factory=dict)


class OrderStateMachine:
    def __init__(
        self,
        transitions: tuple[Transition, ...] = TRANSITIONS,
        side_actions: tuple[SideAction, ...] = SIDE_ACTIONS,
        labels: dict[str, str] | None = None,
    ):
        self.transitions = transitions
        self.side_actions = side_actions
        self.labels = dict(labels or LABELS)
        self._by_source: dict[str, list[Transition]] = {s: [] for s in STATES}
        for t in transitions:
            self._by_source.setdefault(t.source, []).append(t)
        self.capabilities = self._build_capabilities()

    def _build_capabilities(self) -> dict[Role, Capability]:
        table = {role: Capability() for role in Role}
        for t in self.transitions:
            if t.role is SYSTEM:
                continue
            table[t.role].actions.add(t.action)
            table[t.role].inputs[t.action] = t.inputs
        for s in self.side_actions:
            table[s.role].actions.add(s.action)
            table[s.role].inputs[s.action] = s.inputs
        return table

    # ─── Queries ───

    @property
    def actions(self) -> set[str]:
        return {t.action for t in self.transitions if t.role is not SYSTEM} | {s.action for s in self.side_actions}

    def is_terminal(self, state: str) -> bool:
        return state in TERMINAL

    def label(self, state: str) -> str:
        return self.labels[state]

    def states_for_label(self, label: str) -> set[str]:
        key = label.strip().lower()
        return {s for s, lbl in self.labels.items() if lbl.lower() == key}

    def owner(self, action: str) -> Role | None:
        for t in self.transitions:
            if t.action == action:
                return t.role
        for s in self.side_actions:
            if s.action == action:
                return s.role
        raise IllegalTransitionError(f"Unknown action: {action!r}")

    def outgoing(self, state: str) -> list[Transition]:
        return list(self._by_source.get(state, []))

    def reachable(self, state: str) -> set[str]:
        """States reachable from ``state`` in zero or more transitions."""
        seen = {state}
        queue = [state]
        while queue:
            current = queue.pop(0)
            for t in self._by_source.get(current, []):
                if t.target not in seen:
                    seen.add(t.target)
                    queue.append(t.target)
        return seen

    def is_forward(self, previous: str, observed: str) -> bool:
        return observed in self.reachable(previous)

    def is_side_action(self, action: str) -> bool:
        return any(s.action == action for s in self.side_actions)

    def required_inputs(self, role: Role, action: str) -> tuple[str, ...]:
        return self.capabilities[role].inputs.get(action, ())

    # ─── Transitions ───

    def apply(self, state: str, action: str, role: Role) -> str:
        """Return the state ``action`` by ``role`` leads to from ``state``.

        Side actions return ``state`` unchanged. Raises RoleViolationError when
        the action belongs to another role, IllegalTransitionError when the
        action is not legal from ``state``.
        """
        owner = self.owner(action)
        if owner is SYSTEM:
            raise RoleViolationError(f"{action!r} is not an actor action")
        if owner != role:
            raise RoleViolationError(f"{role} may not {action!r}; only {owner} may")

        for s in self.side_actions:
            if s.action == action:
                if s.state != state:
                    raise IllegalTransitionError(f"{action!r} is only legal in {s.state}, order is {state}")
                return state

        if self.is_terminal(state):
            raise IllegalTransitionError(f"Order is {state} (terminal); {action!r} rejected")
        for t in self._by_source.get(state, []):
            if t.action == action:
                return t.target
        raise IllegalTransitionError(f"{action!r} is not a legal transition from {state}")

    def settle_once(self, state: str) -> str | None:
        for t in self._by_source.get(state, []):
            if t.role is SYSTEM:
                return t.target
        return None

    def settle(self, state: str) -> str:
        """Follow system-owned transitions until an actor has to act again."""
        while (nxt := self.settle_once(state)) is not None:
            state = nxt
        return state


DEFAULT_MACHINE = OrderStateMachine()
