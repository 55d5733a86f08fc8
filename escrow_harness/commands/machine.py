"""escrow-harness machine: print the order state machine."""
from __future__ import annotations

from escrow_harness.compiler import generate_machine_mermaid
from escrow_harness.engine.machine import DEFAULT_MACHINE


def cmd_machine():
    print("```mermaid")
    print(generate_machine_mermaid(DEFAULT_MACHINE))
    print("```")
