"""Drives a multi-actor scenario against the order state machine.

One session per role, opened through an AsyncExitStack so every session
is closed on success, failure and scenario timeout alike. Steps run in
order; only the observer waits inside a step run concurrently.
"""
from __future__ import annotations

import asyncio
import logging
import random
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError

from escrow_harness.engine.expression import evaluate_template, render
from escrow_harness.engine.machine import DEFAULT_MACHINE, START, OrderStateMachine
from escrow_harness.engine.verifier import Verifier
from escrow_harness.errors import (
    ConfigurationError,
    HarnessError,
    ScenarioError,
    ScenarioFailure,
    StateTimeoutError,
)
from escrow_harness.session.actor import PRIMITIVES
from escrow_harness.types import Role, RunResult, StatusObservation, StepOutcome
from escrow_harness.ui import controls as ui
from escrow_harness.ui.offer import create_offer, create_order, draft_offer
from escrow_harness.ui.recipes import RECIPES, run_recipe

if TYPE_CHECKING:
    from escrow_harness.config import HarnessConfig
    from escrow_harness.engine.verifier import Verdict
    from escrow_harness.session.actor import ActorSession
    from escrow_harness.session.browser import SessionFactory
    from escrow_harness.store.runs import RunStore
    from escrow_harness.types import Order, ScenarioDefinition, ScenarioStep

logger = logging.getLogger(__name__)

NAVIGATION = PRIMITIVES | {"goto", "observe"}

RESOLUTIONS = {
    "resolve_release_to_buyer": ("released_to_buyer", "buyer"),
    "resolve_return_to_seller": ("returned_to_seller", "seller"),
}


class Orchestrator:
    def __init__(
        self,
        config: HarnessConfig,
        factory: SessionFactory,
        *,
        machine: OrderStateMachine = DEFAULT_MACHINE,
        verifier: Verifier | None = None,
        run_store: RunStore | None = None,
        seed: int | None = None,
    ):
        self.config = config
        self.factory = factory
        self.machine = machine
        self.verifier = verifier or Verifier(machine)
        self.run_store = run_store
        self.seed = seed if seed is not None else random.randrange(2**32)
        self.rng = random.Random(self.seed)
        self.state = START

    # ─── Public API ───

    async def run(self, scenario: ScenarioDefinition, variables: dict[str, Any] | None = None) -> RunResult:
        """Execute ``scenario``; return the result or raise the first failure.

        Setup problems (unknown role, missing artifacts, missing variables)
        raise before any session opens. Step failures raise ScenarioFailure.
        """
        context = self._context(scenario, variables or {})
        roles = scenario.roles
        for role in roles:
            self.factory.preflight(role)

        self.state = START
        result = RunResult(scenario.name)
        if self.run_store:
            result.run_id = self.run_store.start_run(scenario.name, self.seed)
        logger.info("Running %r (seed %d) with %s", scenario.name, self.seed, ", ".join(roles))

        try:
            async with asyncio.timeout(self.config.scenario_timeout):
                async with AsyncExitStack() as stack:
                    sessions = await self._open_sessions(stack, roles)
                    for index, step in enumerate(scenario.steps):
                        outcome = await self._run_step(index, step, sessions, context, result)
                        result.outcomes.append(outcome)
                        if self.run_store:
                            self.run_store.record_step(result.run_id, outcome)
        except TimeoutError as e:
            cause = TimeoutError(f"scenario timeout of {self.config.scenario_timeout:.0f}s elapsed")
            failure = self._abort(scenario, result, cause)
            raise failure from e
        except ScenarioFailure as failure:
            self._fail(result, failure)
            raise
        except HarnessError as e:
            # raised while opening sessions, before step 0
            self._fail(result, e)
            raise
        except PlaywrightError as e:
            # the browser went away outside a step, e.g. while closing sessions
            failure = self._abort(scenario, result, e)
            raise failure from e

        result.status = "passed"
        if self.run_store:
            self.run_store.finish_run(result.run_id, "passed", result.order.id)
        logger.info("Scenario %r passed (%d steps, order %s)", scenario.name, len(result.outcomes), result.order.id or "-")
        return result

    def _context(self, scenario: ScenarioDefinition, variables: dict[str, Any]) -> dict[str, Any]:
        context = {"base_url": self.config.base_url, **scenario.variables, **variables}
        missing = sorted(k for k, v in context.items() if v is None)
        if missing:
            raise ConfigurationError(
                f"Scenario {scenario.name!r} needs values for: {', '.join(missing)} "
                f"(pass --var {missing[0]}=...)"
            )
        return context

    async def _open_sessions(self, stack: AsyncExitStack, roles: list[Role]) -> dict[Role, ActorSession]:
        sessions: dict[Role, ActorSession] = {}
        for role in roles:
            if role in sessions:
                raise ConfigurationError(f"A session for {role} is already open")
            sessions[role] = await stack.enter_async_context(self.factory.open(role))
        return sessions

    def _abort(self, scenario: ScenarioDefinition, result: RunResult, cause: BaseException) -> ScenarioFailure:
        """Pin a failure that no step caught on the step that was running."""
        index = len(result.outcomes)
        step = scenario.steps[index] if index < len(scenario.steps) else scenario.steps[-1]
        failure = ScenarioFailure(
            index, step.name, step.actor.value, cause,
            expected=step.expect.state if step.expect else None,
            observed=self.state,
        )
        self._fail(result, failure)
        return failure

    def _fail(self, result: RunResult, error: BaseException) -> None:
        result.status = "failed"
        result.failure = str(error)
        logger.error("Scenario %r failed: %s", result.scenario, error)
        if self.run_store and result.run_id is not None:
            if isinstance(error, ScenarioFailure) and error.index >= len(result.outcomes):
                failed = StepOutcome(error.index, error.step, Role.parse(error.actor), "", self.state)
                self.run_store.record_step(result.run_id, failed, "failed", str(error.cause))
            self.run_store.finish_run(result.run_id, "failed", result.order.id, str(error))

    # ─── Steps ───

    async def _run_step(
        self,
        index: int,
        step: ScenarioStep,
        sessions: dict[Role, ActorSession],
        context: dict[str, Any],
        result: RunResult,
    ) -> StepOutcome:
        session = sessions[step.actor]
        loop = asyncio.get_running_loop()
        start = loop.time()
        logger.info("Step %d %r: %s %s", index, step.name, step.actor, step.action)
        try:
            if step.action in NAVIGATION:
                await self._navigate(session, step, context)
            else:
                await self._act(session, step, context, result)
            verdicts = await self._expect(step, sessions)
            for text in step.texts:
                await self.verifier.assert_visible(session, _text_selector(text))
            for role, controls in step.forbid.items():
                for control in controls:
                    await self.verifier.assert_control_not_enabled(sessions[role], ui.button(control))
            for name, rule in step.capture.items():
                context[name] = await self._capture(session, rule, context)
                logger.info("%s captured %s=%s", step.actor, name, context[name])
            if step.settle:
                logger.info("Settling %.1fs after %r", step.settle, step.name)
                await asyncio.sleep(step.settle)
        except (HarnessError, PlaywrightError) as e:
            raise self._failure(index, step, e) from e

        observations = [
            StatusObservation(v.role, v.observed, v.raw_text, loop.time(), v.elapsed) for v in verdicts
        ]
        return StepOutcome(index, step.name, step.actor, step.action, self.state, observations, loop.time() - start)

    async def _navigate(self, session: ActorSession, step: ScenarioStep, context: dict[str, Any]) -> None:
        if step.action == "observe":
            return
        target = evaluate_template(step.target or "", context)
        value = evaluate_template(step.value, context) if step.value is not None else None
        await session.perform_action(step.action, target, value)

    async def _act(self, session: ActorSession, step: ScenarioStep, context: dict[str, Any], result: RunResult) -> None:
        inputs = render(step.inputs, context)
        await self._gate(session, step)

        missing = [k for k in self.machine.required_inputs(step.actor, step.action) if k not in inputs]
        # the counterparty handle can be read from the resolve form instead
        missing = [k for k in missing if k != "counterparty"]
        target = self.machine.apply(self.state, step.action, step.actor)
        if missing:
            raise ScenarioError(f"{step.action!r} requires inputs: {', '.join(missing)}")

        order = result.order
        match step.action:
            case "create_offer":
                draft = await create_offer(session, draft_offer(self.rng))
                order.payment_method = draft.payment_method
                order.amount_range = (draft.min_amount, draft.max_amount)
                order.headline = draft.headline
                order.visibility = draft.visibility
                context["headline"] = draft.headline
            case "create_order":
                order.id = await create_order(session, str(inputs["offer_id"]), str(inputs.get("amount", "")))
                context["order_id"] = order.id
                context["order_url"] = self.config.order_url(order.id)
            case _:
                recipe = RECIPES[step.action]
                values = await run_recipe(session, recipe, inputs, self.rng)
                for selector in recipe.confirms:
                    await self.verifier.assert_visible(session, selector)
                self._record(order, step.action, values)

        self.state = self.machine.settle(target)
        if self.state != START:
            order.state = self.state
        logger.info("Order %s now %s", order.id or "-", self.state)

    async def _gate(self, session: ActorSession, step: ScenarioStep) -> None:
        """The actor must see the current model state before it may act on it."""
        wanted = step.gate or self.state
        if wanted == START or session.last_state == wanted:
            return
        await self.verifier.assert_visible(session, wanted)

    def _record(self, order: Order, action: str, values: dict[str, Any]) -> None:
        if action == "dispute":
            order.dispute_reason = values.get("reason")
        elif action in RESOLUTIONS:
            outcome, party = RESOLUTIONS[action]
            order.resolution_outcome = outcome
            if values.get("counterparty"):
                order.parties[party] = values["counterparty"]
        if values.get("deposit_choice") not in (None, ""):
            order.deposit_choice = str(values["deposit_choice"])

    async def _expect(self, step: ScenarioStep, sessions: dict[Role, ActorSession]) -> list[Verdict]:
        if not step.expect:
            return []
        exp = step.expect
        observers = exp.observers or [step.actor]
        tasks = [
            asyncio.ensure_future(
                self.verifier.assert_visible(sessions[role], exp.state, exp.timeout, allow_later=exp.allow_later)
            )
            for role in observers
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _capture(self, session: ActorSession, rule: dict[str, str], context: dict[str, Any]) -> str:
        if rule.get("source") == "url":
            return session.page.url
        target = evaluate_template(rule["target"], context)
        value = await session.read_attribute(target, rule.get("attribute", "value"))
        if value is None:
            raise ScenarioError(f"{target} has no {rule.get('attribute', 'value')!r} attribute to capture")
        return value

    def _failure(self, index: int, step: ScenarioStep, error: Exception) -> ScenarioFailure:
        expected = step.expect.state if step.expect else None
        observed = None
        timeout = error if isinstance(error, StateTimeoutError) else error.__cause__
        if isinstance(timeout, StateTimeoutError):
            expected = timeout.expected
            observed = timeout.last_observed
        return ScenarioFailure(index, step.name, step.actor.value, error, expected, observed)


def _text_selector(text: str) -> str:
    return ui.text(text) if text in ui.MESSAGES else text

