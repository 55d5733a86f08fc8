"""One role's live browser session and its interaction primitives.

``wait_for_state`` is the only place the harness absorbs remote latency:
it polls the rendered ``Status: <label>`` text until it names the
expected state or the timeout runs out. Nothing else sleeps or retries.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from escrow_harness.engine.machine import DEFAULT_MACHINE, OrderStateMachine
from escrow_harness.errors import (
    ConvergenceError,
    ElementNotFoundError,
    ElementNotInteractableError,
    IllegalTransitionError,
    InteractionError,
    StateTimeoutError,
)
from escrow_harness.types import Role, StatusObservation
from escrow_harness.ui.controls import STATUS_SELECTOR, parse_status

if TYPE_CHECKING:
    from collections.abc import Iterable

    from playwright.async_api import BrowserContext, Locator, Page

    from escrow_harness.config import HarnessConfig
    from escrow_harness.types import Actor

logger = logging.getLogger(__name__)

PRIMITIVES = frozenset({"click", "fill", "check", "select", "press"})


class ActorSession:
    def __init__(
        self,
        actor: Actor,
        page: Page,
        config: HarnessConfig,
        *,
        context: BrowserContext | None = None,
        machine: OrderStateMachine = DEFAULT_MACHINE,
    ):
        self.actor = actor
        self.page = page
        self.context = context
        self.config = config
        self.machine = machine
        self.last_state: str | None = None
        self.last_raw = ""
        self.closed = False

    @property
    def role(self) -> Role:
        return self.actor.role

    def __repr__(self) -> str:
        return f"ActorSession({self.role}, last_state={self.last_state})"

    # ─── Interaction primitives ───

    async def perform_action(self, action: str, target: str, value: str | None = None) -> None:
        if action == "goto":
            await self.goto(target)
            return
        if action not in PRIMITIVES:
            raise InteractionError(self.role.value, action, target, "unknown interaction")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.element_timeout
        logger.debug("%s: %s %s", self.role, action, target)
        try:
            locator = self.page.locator(target).first
            await self._await_visible(locator, action, target)
            await self._await_enabled(locator, action, target, deadline)
            timeout_ms = max(deadline - loop.time(), 0.1) * 1000
            match action:
                case "click":
                    await locator.click(timeout=timeout_ms)
                case "fill":
                    await locator.fill(value or "", timeout=timeout_ms)
                case "check":
                    await locator.check(timeout=timeout_ms)
                case "select":
                    await locator.select_option(value, timeout=timeout_ms)
                case "press":
                    await locator.press(value or "Enter", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise ElementNotInteractableError(self.role.value, action, target, str(e)) from e
        except PlaywrightError as e:
            # closed page, crashed context, detached element
            raise InteractionError(self.role.value, action, target, str(e)) from e

    async def _await_visible(self, locator: Locator, action: str, target: str) -> None:
        try:
            await locator.wait_for(state="visible", timeout=self.config.element_timeout * 1000)
        except PlaywrightTimeoutError as e:
            if await locator.count() > 0:
                raise ElementNotInteractableError(self.role.value, action, target, "hidden") from e
            raise ElementNotFoundError(
                self.role.value, action, target, f"not found within {self.config.element_timeout:.0f}s"
            ) from e

    async def _await_enabled(self, locator: Locator, action: str, target: str, deadline: float) -> None:
        if action == "press":
            return
        loop = asyncio.get_running_loop()
        while not await locator.is_enabled():
            if loop.time() >= deadline:
                raise ElementNotInteractableError(self.role.value, action, target, "disabled")
            await asyncio.sleep(self.config.poll_interval)

    async def goto(self, url: str) -> None:
        logger.info("%s: navigating to %s", self.role, url)
        try:
            await self.page.goto(
                url, wait_until="domcontentloaded", timeout=self.config.navigation_timeout * 1000
            )
        except PlaywrightError as e:
            raise InteractionError(self.role.value, "goto", url, str(e)) from e

    async def read_attribute(self, target: str, name: str) -> str | None:
        locator = self.page.locator(target).first
        try:
            await self._await_visible(locator, "read", target)
            return await locator.get_attribute(name)
        except PlaywrightError as e:
            raise InteractionError(self.role.value, "read", target, str(e)) from e

    async def count(self, target: str) -> int:
        try:
            return await self.page.locator(target).count()
        except PlaywrightError as e:
            raise InteractionError(self.role.value, "count", target, str(e)) from e

    async def control_state(self, target: str) -> str:
        """absent | hidden | disabled | enabled, from a single read with no waiting."""
        locator = self.page.locator(target)
        try:
            if await locator.count() == 0:
                return "absent"
            first = locator.first
            if not await first.is_visible():
                return "hidden"
            if not await first.is_enabled():
                return "disabled"
        except PlaywrightError as e:
            raise InteractionError(self.role.value, "inspect", target, str(e)) from e
        return "enabled"

    # ─── Observation ───

    async def observe(self) -> StatusObservation:
        loop = asyncio.get_running_loop()
        raw = ""
        locator = self.page.locator(STATUS_SELECTOR)
        try:
            if await locator.count() > 0:
                raw = (await locator.first.text_content()) or ""
        except PlaywrightError as e:
            # page mid-navigation; the next poll reads again
            logger.debug("%s: status read failed: %s", self.role, e)
        label = parse_status(raw)
        return StatusObservation(
            role=self.role,
            state=self._resolve(label),
            raw_text=raw.strip(),
            observed_at=loop.time(),
        )

    def _resolve(self, label: str | None) -> str | None:
        if not label:
            return None
        candidates = self.machine.states_for_label(label)
        if not candidates:
            return None
        if self.last_state is not None:
            ahead = [s for s in candidates if self.machine.is_forward(self.last_state, s)]
            if ahead:
                candidates = set(ahead)
        # the earliest state in graph order is the least committal reading
        for state in self.machine.labels:
            if state in candidates:
                return state
        return None

    async def wait_for_state(
        self,
        expected: str,
        timeout: float | None = None,
        poll_interval: float | None = None,
        accept: Iterable[str] | None = None,
    ) -> float:
        """Poll until the rendered status names ``expected`` (or a state in ``accept``).

        Returns the elapsed wait in seconds. Raises StateTimeoutError with the
        first and last observed states when the timeout elapses.
        """
        timeout = self.config.state_timeout if timeout is None else timeout
        interval = self.config.poll_interval if poll_interval is None else poll_interval
        wanted = set(accept or ()) | {expected}
        wanted_labels = {self.machine.label(s).lower() for s in wanted}

        loop = asyncio.get_running_loop()
        start = loop.time()
        first: StatusObservation | None = None
        last: StatusObservation | None = None
        while True:
            obs = await self.observe()
            first = first or obs
            last = obs
            if obs.state and self.last_state and not self.machine.is_forward(self.last_state, obs.state):
                raise IllegalTransitionError(
                    f"{self.role} observed {obs.state}, which is not reachable from {self.last_state}"
                )
            label = parse_status(obs.raw_text)
            if label and label.lower() in wanted_labels:
                matched = self.machine.states_for_label(label) & wanted
                self.last_state = expected if expected in matched else min(matched, key=list(self.machine.labels).index)
                self.last_raw = obs.raw_text
                elapsed = loop.time() - start
                logger.info("%s observed %s after %.1fs", self.role, self.last_state, elapsed)
                return elapsed
            if loop.time() - start >= timeout:
                break
            await asyncio.sleep(interval)

        elapsed = loop.time() - start
        last_state = last.state if last else None
        last_label = parse_status(last.raw_text) if last else None
        # a shared label such as "Completed" also names a non-terminal state
        terminal = any(self.machine.is_terminal(s) for s in self.machine.states_for_label(last_label or ""))
        raise StateTimeoutError(
            self.role.value,
            expected,
            last_observed=last_state or (last.raw_text if last else None) or None,
            initial_observed=(first.state or first.raw_text or None) if first else None,
            elapsed=elapsed,
            terminal=terminal,
        )

    async def wait_for_text(self, selector: str, timeout: float | None = None) -> float:
        timeout = self.config.state_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        start = loop.time()
        try:
            await self.page.locator(selector).first.wait_for(state="visible", timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise ConvergenceError(f"{self.role} never saw {selector} within {timeout:.1f}s") from e
        except PlaywrightError as e:
            raise InteractionError(self.role.value, "wait_for", selector, str(e)) from e
        return loop.time() - start

    # ─── Lifecycle ───

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        target = self.context or self.page
        try:
            await target.close()
        finally:
            logger.info("%s session closed", self.role)
