"""Parse YAML scenario definitions into ScenarioDefinition objects."""
from __future__ import annotations

from importlib import resources
from pathlib import Path

import yaml

from escrow_harness.errors import ConfigurationError, ScenarioError
from escrow_harness.types import Expectation, Role, ScenarioDefinition, ScenarioStep

# Accepted spellings -> internal key
KEYWORD_MAP = {
    "role": "actor",
    "as": "actor",
    "do": "action",
    "then": "expect",
    "input": "inputs",
    "with": "inputs",
    "see": "texts",
    "wait_for": "gate",
    "seen_by": "observers",
}

STEP_KEYS = frozenset({
    "name", "actor", "action", "target", "value", "inputs", "gate",
    "expect", "texts", "forbid", "capture", "settle",
})


def _normalize_key(key: str) -> str:
    return KEYWORD_MAP.get(key, key)


def _normalize(body: dict) -> dict:
    """Rename step-level keywords only; inputs and captures keep their keys."""
    return {_normalize_key(str(k)): v for k, v in body.items()}


def _parse_raw_step(raw, idx: int) -> tuple[str, dict]:
    """A step is either a mapping with ``name`` or a single-key mapping ``{name: body}``."""
    if not isinstance(raw, dict):
        raise ScenarioError(f"Step {idx}: expected a mapping, got {type(raw).__name__}")

    if "name" in raw:
        return (str(raw["name"]), _normalize(raw))

    keys = list(raw.keys())
    if len(keys) == 1 and isinstance(raw[keys[0]], dict):
        return (str(keys[0]), _normalize(raw[keys[0]]))

    return (f"step {idx}", _normalize(raw))


def _role(value, where: str) -> Role:
    try:
        return Role.parse(value)
    except ConfigurationError as e:
        raise ScenarioError(f"{where}: {e}") from e


def _parse_expect(raw, actor: Role, where: str) -> Expectation | None:
    if raw is None:
        return None
    # shorthand: `expect: Escrowed` is seen by the acting role
    if isinstance(raw, str):
        return Expectation(state=raw, observers=[actor])
    if not isinstance(raw, dict):
        raise ScenarioError(f"{where}: expect must be a state name or a mapping")
    raw = _normalize(raw)
    if "state" not in raw:
        raise ScenarioError(f"{where}: expect needs a state")
    observers = raw.get("observers") or [actor]
    if isinstance(observers, str):
        observers = [observers]
    timeout = raw.get("timeout")
    return Expectation(
        state=str(raw["state"]),
        observers=[_role(o, where) for o in observers],
        allow_later=bool(raw.get("allow_later", False)),
        timeout=float(timeout) if timeout is not None else None,
    )


def _parse_step(name: str, body: dict, idx: int) -> ScenarioStep:
    where = f"Step {idx} ({name!r})"
    unknown = set(body) - STEP_KEYS
    if unknown:
        raise ScenarioError(f"{where}: unknown keys: {', '.join(sorted(unknown))}")
    if "actor" not in body or "action" not in body:
        raise ScenarioError(f"{where}: needs both actor and action")

    actor = _role(body["actor"], where)
    forbid_raw = body.get("forbid") or {}
    if not isinstance(forbid_raw, dict):
        raise ScenarioError(f"{where}: forbid must map role -> list of controls")
    forbid = {
        _role(r, where): [controls] if isinstance(controls, str) else list(controls)
        for r, controls in forbid_raw.items()
    }
    texts = body.get("texts") or []
    if isinstance(texts, str):
        texts = [texts]

    return ScenarioStep(
        name=name,
        actor=actor,
        action=str(body["action"]),
        target=body.get("target"),
        value=str(body["value"]) if body.get("value") is not None else None,
        inputs=dict(body.get("inputs") or {}),
        gate=body.get("gate"),
        expect=_parse_expect(body.get("expect"), actor, where),
        texts=[str(t) for t in texts],
        forbid=forbid,
        capture=dict(body.get("capture") or {}),
        settle=float(body.get("settle") or 0),
    )


def parse_scenario_yaml(content: str) -> ScenarioDefinition:
    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ScenarioError(f"Invalid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ScenarioError("Invalid YAML: expected a mapping")

    raw_steps = raw.get("steps")
    if not isinstance(raw_steps, list):
        raise ScenarioError('Invalid scenario: missing "steps" list')

    parsed = [_parse_raw_step(r, i) for i, r in enumerate(raw_steps)]

    seen: dict[str, int] = {}
    for n, _ in parsed:
        seen[n] = seen.get(n, 0) + 1
    dupes = [n for n, c in seen.items() if c > 1]
    if dupes:
        raise ScenarioError(f"Duplicate step names: {', '.join(dupes)}")

    variables = raw.get("variables") or {}
    if not isinstance(variables, dict):
        raise ScenarioError("Invalid scenario: variables must be a mapping")

    return ScenarioDefinition(
        name=str(raw.get("name", "unnamed scenario")),
        description=str(raw.get("description", "")),
        variables=dict(variables),
        steps=[_parse_step(n, body, i) for i, (n, body) in enumerate(parsed)],
    )


def find_scenario(name: str, cwd: str | Path) -> tuple[Path | None, str]:
    """Locate a scenario by path, then ``<cwd>/scenarios/<name>.yaml``, then the bundled set.

    Returns ``(path, content)``; ``path`` is None for bundled scenarios.
    """
    candidates = [Path(name), Path(cwd) / "scenarios" / f"{name}.yaml"]
    for path in candidates:
        if path.is_file():
            return path, path.read_text(encoding="utf-8")

    bundled = resources.files("escrow_harness.scenarios").joinpath(f"{name}.yaml")
    if bundled.is_file():
        return None, bundled.read_text(encoding="utf-8")
    raise ScenarioError(f"Scenario not found: {name} (looked in {candidates[1].parent} and the bundled set)")


def bundled_scenarios() -> list[str]:
    root = resources.files("escrow_harness.scenarios")
    return sorted(p.name.removesuffix(".yaml") for p in root.iterdir() if p.name.endswith(".yaml"))
