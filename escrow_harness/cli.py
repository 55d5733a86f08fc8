"""Thin CLI router: dispatches to commands."""
from __future__ import annotations

import logging
import os
import sys

USAGE = """\
escrow-harness: multi-actor end-to-end harness for the escrow marketplace

Usage:
  escrow-harness bootstrap [role]      Log in once (headed) and capture the role's session + wallet store
  escrow-harness inject [role]         Restore a role's session and store, report the record count
  escrow-harness load <scenario>       Parse and validate a scenario, print its Mermaid diagram
  escrow-harness run <scenario>        Run a scenario with Buyer / Seller / Arbitrator sessions
        [--headed] [--seed N] [--var key=value ...]
  escrow-harness machine               Print the order state machine as a Mermaid diagram
  escrow-harness history [run-id]      Show recent runs, or the steps of one run
  escrow-harness reset [--artifacts]   Clear run history (and persisted role artifacts)

Roles: buyer, seller, arbitrator (alias: arb); defaults to ESCROW_ROLE
Global flags: -v / --verbose for debug logging
"""


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _take_flag(args: list[str], *names: str) -> bool:
    found = False
    for name in names:
        while name in args:
            args.remove(name)
            found = True
    return found


def _take_options(args: list[str], name: str) -> list[str]:
    values: list[str] = []
    while name in args:
        i = args.index(name)
        if i + 1 >= len(args):
            print(f"{name} needs a value", file=sys.stderr)
            sys.exit(1)
        values.append(args[i + 1])
        del args[i:i + 2]
    return values


def main():
    args = sys.argv[1:]
    cwd = os.getcwd()
    _setup_logging(_take_flag(args, "-v", "--verbose"))
    command = args[0] if args else None

    if command in ("bootstrap", "inject"):
        headless = _take_flag(args, "--headless")
        # without a role argument the command falls back to ESCROW_ROLE
        role_name = args[1] if len(args) > 1 else None
        if command == "bootstrap":
            from escrow_harness.commands.bootstrap import cmd_bootstrap
            cmd_bootstrap(role_name, cwd, headless=headless)
        else:
            from escrow_harness.commands.inject import cmd_inject
            cmd_inject(role_name, cwd, headless=headless or None)

    elif command == "load":
        if len(args) < 2:
            print("Usage: escrow-harness load <scenario>", file=sys.stderr)
            sys.exit(1)
        from escrow_harness.commands.load import cmd_load
        cmd_load(args[1], cwd)

    elif command == "run":
        headed = _take_flag(args, "--headed")
        variables = _take_options(args, "--var")
        seeds = _take_options(args, "--seed")
        if len(args) < 2:
            print("Usage: escrow-harness run <scenario> [--headed] [--seed N] [--var key=value]", file=sys.stderr)
            sys.exit(1)
        from escrow_harness.commands.run import cmd_run
        cmd_run(args[1], cwd, headed=headed, variables=variables, seed=seeds[-1] if seeds else None)

    elif command == "machine":
        from escrow_harness.commands.machine import cmd_machine
        cmd_machine()

    elif command == "history":
        from escrow_harness.commands.history import cmd_history
        cmd_history(cwd, args[1] if len(args) > 1 else None)

    elif command == "reset":
        from escrow_harness.commands.reset import cmd_reset
        cmd_reset(cwd, artifacts=_take_flag(args, "--artifacts"))

    elif command in ("help", "--help", "-h", None):
        print(USAGE)

    else:
        print(f"Unknown command: {command}", file=sys.stderr)
        print(USAGE)
        sys.exit(1)
