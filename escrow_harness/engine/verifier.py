"""Turns session waits into pass/fail verdicts with a readable diagnostic."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from escrow_harness.engine.machine import DEFAULT_MACHINE, OrderStateMachine
from escrow_harness.errors import ConvergenceError, StateTimeoutError, VerificationError

if TYPE_CHECKING:
    from escrow_harness.session.actor import ActorSession
    from escrow_harness.types import Role

logger = logging.getLogger(__name__)


@dataclass
class Verdict:
    role: Role
    predicate: str
    observed: str | None
    elapsed: float
    raw_text: str = ""


class Verifier:
    """Read-only checks against actor sessions. Never clicks, never fills."""

    def __init__(self, machine: OrderStateMachine = DEFAULT_MACHINE):
        self.machine = machine

    async def assert_visible(
        self,
        session: ActorSession,
        predicate: str,
        timeout: float | None = None,
        *,
        allow_later: bool = False,
    ) -> Verdict:
        """``predicate`` is a model state name or a text selector.

        States go through ``wait_for_state``; with ``allow_later`` any state
        reachable from the expected one also passes (an observer may first
        poll after the order already moved on). Anything else is treated as
        a selector that must become visible.
        """
        if predicate in self.machine.labels:
            return await self._assert_state(session, predicate, timeout, allow_later)
        try:
            elapsed = await session.wait_for_text(predicate, timeout)
        except ConvergenceError as e:
            raise VerificationError(f"{session.role}: expected {predicate} to be visible: {e}") from e
        return Verdict(session.role, predicate, predicate, elapsed)

    async def _assert_state(
        self, session: ActorSession, expected: str, timeout: float | None, allow_later: bool
    ) -> Verdict:
        previous = session.last_state
        accept = self.machine.reachable(expected) if allow_later else {expected}
        accept &= set(self.machine.labels)
        try:
            elapsed = await session.wait_for_state(expected, timeout=timeout, accept=accept)
        except StateTimeoutError as e:
            raise VerificationError(
                f"{session.role}: expected Status {self.machine.label(expected)} ({expected}), "
                f"{e.kind}, last observed {e.last_observed or 'nothing'} after {e.elapsed:.1f}s"
            ) from e
        observed = session.last_state
        if previous is not None and observed is not None:
            self.assert_forward(session.role, previous, observed)
        return Verdict(session.role, expected, observed, elapsed, session.last_raw)

    def assert_forward(self, role: Role, previous: str, observed: str) -> None:
        """An observer's view may lag, but must never move backwards or off the graph."""
        if not self.machine.is_forward(previous, observed):
            raise VerificationError(
                f"{role} observed {observed} after {previous}: not a legal progression"
            )

    async def assert_control_not_enabled(self, session: ActorSession, target: str) -> str:
        state = await session.control_state(target)
        if state == "enabled":
            raise VerificationError(f"{session.role} sees {target} enabled but may not use it")
        logger.debug("%s: %s is %s", session.role, target, state)
        return state
