"""escrow-harness load <scenario>: parse, validate and diagram a scenario."""
from __future__ import annotations

import sys

from escrow_harness.compiler import (
    find_scenario,
    format_errors,
    generate_scenario_mermaid,
    has_errors,
    parse_scenario_yaml,
    validate_scenario,
)
from escrow_harness.errors import ScenarioError


def cmd_load(scenario_name: str, cwd: str):
    try:
        path, content = find_scenario(scenario_name, cwd)
        scenario = parse_scenario_yaml(content)
    except ScenarioError as e:
        print(f"✗ Parse error: {e}", file=sys.stderr)
        sys.exit(1)

    errors = validate_scenario(scenario)
    if has_errors(errors):
        print(f'✗ Scenario "{scenario.name}" failed validation:')
        print(format_errors(errors))
        sys.exit(1)

    source = path or "bundled"
    print(f'✓ Scenario "{scenario.name}" compiled ({len(scenario.steps)} steps, {source})')
    if errors:
        print(format_errors(errors))
    needed = [k for k, v in scenario.variables.items() if v is None]
    if needed:
        print(f"  needs at run time: {', '.join(f'--var {k}=...' for k in needed)}")
    print()

    print("```mermaid")
    print(generate_scenario_mermaid(scenario))
    print("```")
    print()
    print(f"Once the scenario looks correct, run: escrow-harness run {scenario_name}")
