"""Template substitution for {{expr}} placeholders in scenario steps."""
from __future__ import annotations

import re
from typing import Any

from escrow_harness.errors import ScenarioError

TEMPLATE_RE = re.compile(r"\{\{(.+?)\}\}")


def evaluate_template(template: str, context: dict[str, Any], *, strict: bool = True) -> str:
    """Replace every {{path}} in ``template`` with its value from ``context``.

    With ``strict`` an unresolvable path is a ScenarioError rather than an
    empty string, so a typo never turns into a blank form field.
    """
    def replacer(m: re.Match) -> str:
        expr = m.group(1).strip()
        val = resolve_path(expr, context)
        if val is None:
            if strict:
                raise ScenarioError(f"Unresolved template variable: {{{{{expr}}}}}")
            return ""
        return str(val)
    return TEMPLATE_RE.sub(replacer, template)


def render(value: Any, context: dict[str, Any]) -> Any:
    if isinstance(value, str):
        return evaluate_template(value, context)
    if isinstance(value, dict):
        return {k: render(v, context) for k, v in value.items()}
    if isinstance(value, list):
        return [render(v, context) for v in value]
    return value


def placeholders(template: str) -> list[str]:
    return [m.group(1).strip() for m in TEMPLATE_RE.finditer(template)]


def resolve_path(path: str, context: dict[str, Any]) -> Any:
    current: Any = context
    for part in path.split("."):
        if current is None:
            return None
        bracket = re.match(r"^(\w+)\[(\d+)\]$", part)
        if bracket:
            current = current.get(bracket.group(1)) if isinstance(current, dict) else getattr(current, bracket.group(1), None)
            if isinstance(current, list) and int(bracket.group(2)) < len(current):
                current = current[int(bracket.group(2))]
            else:
                return None
        elif isinstance(current, dict):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current
