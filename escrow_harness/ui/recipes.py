"""Protocol actions expressed as sequences of UI interactions.

Each recipe is data: the orchestrator asks the state machine whether an
action is legal for a role, then replays the recipe on that role's
session. The last click of a recipe is its commit control.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from escrow_harness.engine.expression import evaluate_template
from escrow_harness.errors import InteractionError
from escrow_harness.ui import controls as ui

if TYPE_CHECKING:
    from escrow_harness.session.actor import ActorSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Interaction:
    kind: str  # click | fill | check | select | press | goto | expect | capture
    target: str
    value: str | None = None
    # capture: read ``attribute`` of ``target`` into inputs[``into``]
    attribute: str | None = None
    into: str | None = None
    # only run when this input is present (or, for capture, absent)
    when: str | None = None


@dataclass(frozen=True)
class Recipe:
    action: str
    steps: tuple[Interaction, ...]
    confirms: tuple[str, ...] = ()

    @property
    def commit(self) -> str:
        clicks = [s.target for s in self.steps if s.kind == "click"]
        return clicks[-1]


def _resolve(handle_input: str, tab: str | None, button: str) -> tuple[Interaction, ...]:
    steps = [
        Interaction("click", ui.button("go_to_dispute")),
        Interaction("expect", ui.text("dispute_detail")),
        Interaction("click", ui.button("resolve")),
        Interaction("expect", ui.text("resolve_dispute")),
    ]
    if tab:
        steps.append(Interaction("click", tab))
    steps += [
        Interaction("capture", handle_input, attribute="placeholder", into="counterparty", when="counterparty"),
        Interaction("fill", handle_input, value="{{counterparty}}"),
        Interaction("click", ui.button(button)),
    ]
    return tuple(steps)


RECIPES: dict[str, Recipe] = {
    r.action: r for r in (
        Recipe("escrow", (
            Interaction("click", ui.button("escrow")),
        ), confirms=(ui.text("escrow_success"),)),
        Recipe("release", (
            Interaction("click", ui.button("release")),
            Interaction("expect", ui.text("confirmation_modal")),
            Interaction("check", ui.CHECKBOX),
            Interaction("click", ui.CONFIRM_RELEASE),
        ), confirms=(ui.text("release_success"),)),
        Recipe("dispute", (
            Interaction("click", ui.button("dispute")),
            Interaction("expect", ui.DISPUTE_HEADING),
            Interaction("fill", ui.REASON_FIELD, value="{{reason}}"),
            Interaction("click", ui.button("create_dispute")),
        )),
        Recipe("resolve_release_to_buyer", _resolve(ui.BUYER_HANDLE_INPUT, None, "release_to_buyer")),
        Recipe("resolve_return_to_seller", _resolve(ui.SELLER_HANDLE_INPUT, ui.SELLER_TAB, "return_to_seller")),
        Recipe("claim", (
            Interaction("check", ui.nth(ui.RADIO, "{{deposit_choice}}"), when="deposit_choice"),
            Interaction("click", ui.button("claim")),
        )),
        Recipe("claim_back", (
            Interaction("check", ui.nth(ui.RADIO, "{{deposit_choice}}"), when="deposit_choice"),
            Interaction("click", ui.button("claim")),
        ), confirms=(ui.text("order_cancelled"),)),
        Recipe("claim_back_fee", (
            Interaction("check", ui.nth(ui.RADIO, 0)),
            Interaction("click", ui.button("claim_back_fee")),
        ), confirms=(ui.text("order_completed"),)),
        Recipe("donate_fee", (
            Interaction("check", ui.nth(ui.RADIO, 1)),
            Interaction("click", ui.button("claim_back_fee")),
        ), confirms=(ui.text("order_completed"),)),
    )
}


async def run_recipe(
    session: ActorSession,
    recipe: Recipe,
    inputs: dict[str, Any],
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """Replay ``recipe`` on ``session``. Returns inputs enriched with captured values."""
    values = dict(inputs)
    await _pick_random_choices(session, values, rng or random.Random())
    for step in recipe.steps:
        if step.kind == "capture":
            if values.get(step.when or ""):
                continue
            values[step.into] = await _capture_handle(session, step)
            continue
        if step.when and values.get(step.when) in (None, ""):
            continue

        target = evaluate_template(step.target, values)
        value = evaluate_template(step.value, values) if step.value is not None else None
        if step.kind == "expect":
            await session.wait_for_text(target, timeout=session.config.element_timeout)
        else:
            await session.perform_action(step.kind, target, value)
    return values


async def _pick_random_choices(session: ActorSession, values: dict[str, Any], rng: random.Random) -> None:
    if values.get("deposit_choice") != "random":
        return
    await session.wait_for_text(ui.RADIO, timeout=session.config.element_timeout)
    count = await session.count(ui.RADIO)
    if count == 0:
        raise InteractionError(session.role.value, "choose", ui.RADIO, "no deposit options offered")
    values["deposit_choice"] = rng.randrange(count)
    logger.info("%s picked deposit option %d of %d", session.role, values["deposit_choice"] + 1, count)


async def _capture_handle(session: ActorSession, step: Interaction) -> str:
    placeholder = await session.read_attribute(step.target, step.attribute or "placeholder") or ""
    m = ui.HANDLE_RE.search(placeholder)
    if not m:
        raise InteractionError(
            session.role.value, "capture", step.target, f"no @handle in placeholder {placeholder!r}"
        )
    handle = f"@{m.group(1)}"
    logger.info("%s captured counterparty %s", session.role, handle)
    return handle
