"""escrow-harness run <scenario>: drive Buyer, Seller and Arbitrator sessions through a scenario."""
from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING

from escrow_harness.compiler import find_scenario, format_errors, has_errors, parse_scenario_yaml, validate_scenario
from escrow_harness.config import load_config
from escrow_harness.engine.orchestrator import Orchestrator
from escrow_harness.errors import HarnessError, ScenarioError, ScenarioFailure
from escrow_harness.session.browser import BrowserSessionFactory, launch_browser
from escrow_harness.session.credentials import CredentialStore
from escrow_harness.store.runs import RunStore

if TYPE_CHECKING:
    from escrow_harness.config import HarnessConfig
    from escrow_harness.types import RunResult, ScenarioDefinition


def parse_vars(pairs: list[str]) -> dict[str, str]:
    variables: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ScenarioError(f"--var expects key=value, got {pair!r}")
        variables[key.strip()] = value
    return variables


async def _run(
    config: HarnessConfig,
    scenario: ScenarioDefinition,
    variables: dict[str, str],
    store: RunStore,
    seed: int | None,
) -> RunResult:
    credentials = CredentialStore.from_config(config)
    async with launch_browser(config) as browser:
        factory = BrowserSessionFactory(browser, config, credentials)
        orchestrator = Orchestrator(config, factory, run_store=store, seed=seed)
        return await orchestrator.run(scenario, variables)


def cmd_run(
    scenario_name: str,
    cwd: str,
    headed: bool = False,
    variables: list[str] | None = None,
    seed: str | None = None,
):
    try:
        _, content = find_scenario(scenario_name, cwd)
        scenario = parse_scenario_yaml(content)
        values = parse_vars(variables or [])
        seed_value = int(seed) if seed is not None else None
    except (ScenarioError, ValueError) as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)

    errors = validate_scenario(scenario)
    if has_errors(errors):
        print(f'✗ Scenario "{scenario.name}" failed validation:')
        print(format_errors(errors))
        sys.exit(1)

    try:
        config = load_config(cwd, headless=False if headed else None)
    except HarnessError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)

    config.artifacts_dir.mkdir(parents=True, exist_ok=True)
    store = RunStore(config.runs_db)
    try:
        result = asyncio.run(_run(config, scenario, values, store, seed_value))
    except ScenarioFailure as e:
        print(f'✗ Scenario "{scenario.name}" failed at step {e.index} ({e.step}, {e.actor})', file=sys.stderr)
        print(f"  {e.cause}", file=sys.stderr)
        if e.expected is not None:
            print(f"  expected {e.expected}, observed {e.observed or 'nothing'}", file=sys.stderr)
        sys.exit(1)
    except HarnessError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        store.close()

    print(f'✓ Scenario "{scenario.name}" passed (run #{result.run_id})')
    for outcome in result.outcomes:
        seen = ", ".join(f"{o.role} {o.elapsed:.1f}s" for o in outcome.observations)
        print(f"  {outcome.index:>2} {outcome.actor:<10} {outcome.name:<36} {outcome.state}" + (f"  [{seen}]" if seen else ""))
    order = result.order
    if order.id:
        print(f"  order {order.id}: {order.state}")
    if order.dispute_reason:
        print(f"  dispute reason: {order.dispute_reason}; outcome: {order.resolution_outcome}")
    if order.deposit_choice is not None:
        print(f"  deposit option: {order.deposit_choice}")
