from escrow_harness.compiler.mermaid import generate_machine_mermaid, generate_scenario_mermaid
from escrow_harness.compiler.parser import find_scenario, parse_scenario_yaml
from escrow_harness.compiler.validator import format_errors, has_errors, validate_scenario

__all__ = [
    "find_scenario",
    "format_errors",
    "generate_machine_mermaid",
    "generate_scenario_mermaid",
    "has_errors",
    "parse_scenario_yaml",
    "validate_scenario",
]
