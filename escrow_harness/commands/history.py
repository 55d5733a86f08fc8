"""escrow-harness history [run-id]: recent runs, or one run's steps."""
from __future__ import annotations

import sys

from escrow_harness.config import load_config
from escrow_harness.errors import ConfigurationError
from escrow_harness.store.runs import RunStore


def cmd_history(cwd: str, run_id: str | None = None):
    try:
        config = load_config(cwd)
    except ConfigurationError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)

    if not config.runs_db.exists():
        print("No runs recorded yet.")
        return

    store = RunStore(config.runs_db)
    try:
        if run_id is None:
            for run in store.get_runs():
                order = f" order={run['order_id']}" if run["order_id"] else ""
                print(f"#{run['id']:<4} {run['status']:<7} {run['scenario']}{order}  {run['started_at']}")
                if run["failure"]:
                    print(f"       {run['failure']}")
            return

        if not run_id.isdigit():
            print(f"Not a run id: {run_id}", file=sys.stderr)
            sys.exit(1)
        steps = store.get_steps(int(run_id))
        if not steps:
            print(f"No steps recorded for run #{run_id}")
            return
        for s in steps:
            mark = "✓" if s["status"] == "passed" else "✗"
            print(f"{mark} {s['index']:>2} {s['actor']:<10} {s['action']:<26} -> {s['state']:<24} {s['elapsed']:.1f}s  {s['name']}")
            for o in s["observations"]:
                print(f"       {o['role']} saw {o['state']} after {o['elapsed']:.1f}s")
            if s["detail"]:
                print(f"       {s['detail']}")
    finally:
        store.close()
