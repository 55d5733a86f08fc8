"""Generate Mermaid diagrams for the order state machine and for scenarios."""
from __future__ import annotations

import re
from typing import TYPE_CHECKING

from escrow_harness.engine.machine import START, SYSTEM

if TYPE_CHECKING:
    from escrow_harness.engine.machine import OrderStateMachine
    from escrow_harness.types import ScenarioDefinition


def _make_id(name: str) -> str:
    clean = re.sub(r"[^a-zA-Z0-9_]", "_", name)
    return re.sub(r"_+", "_", clean).strip("_")


def generate_machine_mermaid(machine: OrderStateMachine) -> str:
    lines = ["stateDiagram-v2"]

    for state, label in machine.labels.items():
        lines.append(f'    {_make_id(state)} : {state} ("Status: {label}")')

    lines.append(f"    [*] --> {_make_id(START)}")
    for t in machine.transitions:
        who = "system" if t.role is SYSTEM else t.role.value
        lines.append(f"    {_make_id(t.source)} --> {_make_id(t.target)} : {t.action} ({who})")

    for side in machine.side_actions:
        # side actions never change state: draw them as self loops
        sid = _make_id(side.state)
        lines.append(f"    {sid} --> {sid} : {side.action} ({side.role.value})")

    for state in machine.labels:
        if machine.is_terminal(state):
            lines.append(f"    {_make_id(state)} --> [*]")
    return "\n".join(lines)


def generate_scenario_mermaid(scenario: ScenarioDefinition) -> str:
    lines = ["sequenceDiagram"]
    for role in scenario.roles:
        lines.append(f"    participant {role.value}")
    lines.append("    participant Order")

    for step in scenario.steps:
        label = step.name.replace('"', "'").replace(";", ",")
        if step.action == "observe":
            lines.append(f"    Note over {step.actor.value}: {label}")
        elif step.action in ("goto", "click", "fill", "check", "select", "press"):
            lines.append(f"    {step.actor.value}->>{step.actor.value}: {label}")
        else:
            lines.append(f"    {step.actor.value}->>Order: {step.action} ({label})")

        if step.expect:
            for observer in step.expect.observers or [step.actor]:
                later = " or later" if step.expect.allow_later else ""
                lines.append(f"    Order-->>{observer.value}: Status {step.expect.state}{later}")
        for role, controls in step.forbid.items():
            lines.append(f"    Note over {role.value}: {', '.join(controls)} not enabled")
    return "\n".join(lines)
