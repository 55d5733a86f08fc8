"""Static analysis for scenarios: replay them against the state machine before any browser opens."""
from __future__ import annotations

from typing import TYPE_CHECKING

from escrow_harness.engine.expression import placeholders
from escrow_harness.engine.machine import DEFAULT_MACHINE, START, OrderStateMachine
from escrow_harness.errors import ModelError
from escrow_harness.session.actor import PRIMITIVES
from escrow_harness.ui import controls as ui

if TYPE_CHECKING:
    from escrow_harness.types import ScenarioDefinition, ScenarioStep

NAVIGATION = PRIMITIVES | {"goto", "observe"}

# variables a protocol action makes available to later steps
PRODUCES = {
    "create_order": ("order_id", "order_url"),
    "create_offer": ("headline",),
}


class ValidationError:
    def __init__(self, level: str, message: str, step: str | None = None):
        self.level = level  # "error" | "warning"
        self.message = message
        self.step = step

    def __str__(self):
        prefix = f"[{self.step}] " if self.step else ""
        return f"{self.level.upper()}: {prefix}{self.message}"


def validate_scenario(
    scenario: ScenarioDefinition, machine: OrderStateMachine = DEFAULT_MACHINE
) -> list[ValidationError]:
    """Run all static checks on a scenario definition."""
    errors: list[ValidationError] = []

    if not scenario.steps:
        errors.append(ValidationError("error", "Scenario has no steps"))
        return errors

    errors.extend(_check_actions(scenario, machine))
    errors.extend(_check_transitions(scenario, machine))
    errors.extend(_check_templates(scenario))
    errors.extend(_check_controls(scenario))
    errors.extend(_check_settles(scenario))
    return errors


def has_errors(errors: list[ValidationError]) -> bool:
    return any(e.level == "error" for e in errors)


def format_errors(errors: list[ValidationError]) -> str:
    if not errors:
        return ""
    lines = []
    errs = [e for e in errors if e.level == "error"]
    warns = [e for e in errors if e.level == "warning"]
    if errs:
        lines.append(f"  {len(errs)} error(s):")
        for e in errs:
            lines.append(f"    ✗ {e}")
    if warns:
        lines.append(f"  {len(warns)} warning(s):")
        for e in warns:
            lines.append(f"    ⚠ {e}")
    return "\n".join(lines)


# ─── Checks ───

def _check_actions(scenario: ScenarioDefinition, machine: OrderStateMachine) -> list[ValidationError]:
    """Actions must be known; protocol actions must belong to the acting role and carry their inputs."""
    errors: list[ValidationError] = []
    for step in scenario.steps:
        if step.action in NAVIGATION:
            if step.action != "observe" and not step.target:
                errors.append(ValidationError("error", f"{step.action!r} needs a target", step.name))
            continue
        if step.action not in machine.actions:
            errors.append(ValidationError("error", f"Unknown action: {step.action!r}", step.name))
            continue

        owner = machine.owner(step.action)
        if owner != step.actor:
            errors.append(ValidationError(
                "error", f"{step.actor} may not {step.action!r}; it belongs to {owner}", step.name
            ))
        for key in machine.required_inputs(step.actor, step.action):
            if key not in step.inputs and key != "counterparty":
                errors.append(ValidationError("error", f"{step.action!r} requires input {key!r}", step.name))
    return errors


def _settle_chain(machine: OrderStateMachine, state: str) -> list[str]:
    chain = [state]
    while (nxt := machine.settle_once(chain[-1])) is not None:
        chain.append(nxt)
    return chain


def _check_transitions(scenario: ScenarioDefinition, machine: OrderStateMachine) -> list[ValidationError]:
    """Replay protocol actions from Start; expectations must match the model at that point."""
    errors: list[ValidationError] = []
    state = START
    for step in scenario.steps:
        if step.gate and step.gate not in machine.labels:
            errors.append(ValidationError("error", f"Unknown gate state: {step.gate!r}", step.name))

        visible = _settle_chain(machine, state)
        if step.action not in NAVIGATION and step.action in machine.actions:
            try:
                target = machine.apply(state, step.action, step.actor)
            except ModelError as e:
                errors.append(ValidationError("error", str(e), step.name))
                # keep replaying from the same state so later steps still get checked
                target = state
            visible = _settle_chain(machine, target)
            state = visible[-1]

        if step.expect:
            expected = step.expect.state
            if expected not in machine.labels:
                errors.append(ValidationError("error", f"Unknown expected state: {expected!r}", step.name))
            elif expected not in visible:
                level = "warning" if step.expect.allow_later and machine.is_forward(state, expected) else "error"
                errors.append(ValidationError(
                    level, f"Expects {expected} but the order is {state} at this point", step.name
                ))
    return errors


def _check_templates(scenario: ScenarioDefinition) -> list[ValidationError]:
    """Every {{var}} must be defined by the scenario, the config or an earlier step."""
    errors: list[ValidationError] = []
    known = {"base_url", *scenario.variables}
    for step in scenario.steps:
        for template in _templates(step):
            for name in placeholders(template):
                root = name.split(".")[0].split("[")[0]
                if root not in known:
                    errors.append(ValidationError("error", f"Undefined variable {{{{{name}}}}}", step.name))
        known.update(PRODUCES.get(step.action, ()))
        known.update(step.capture)
    return errors


def _templates(step: ScenarioStep) -> list[str]:
    out = [t for t in (step.target, step.value) if isinstance(t, str)]
    out += [v for v in step.inputs.values() if isinstance(v, str)]
    for rule in step.capture.values():
        out += [v for v in rule.values() if isinstance(v, str)]
    return out


def _check_controls(scenario: ScenarioDefinition) -> list[ValidationError]:
    errors: list[ValidationError] = []
    for step in scenario.steps:
        for role, controls in step.forbid.items():
            for control in controls:
                if control not in ui.BUTTONS:
                    errors.append(ValidationError(
                        "error", f"Unknown control {control!r} forbidden for {role}", step.name
                    ))
    return errors


def _check_settles(scenario: ScenarioDefinition) -> list[ValidationError]:
    """A fixed delay is allowed but should be rare; flag each one."""
    return [
        ValidationError("warning", f"Fixed settle delay of {step.settle:g}s", step.name)
        for step in scenario.steps if step.settle
    ]
