"""escrow-harness reset: clear run history, optionally the persisted role artifacts too."""
from __future__ import annotations

import sys

from escrow_harness.config import load_config
from escrow_harness.errors import ConfigurationError
from escrow_harness.store.runs import RunStore
from escrow_harness.types import Role


def cmd_reset(cwd: str, artifacts: bool = False):
    try:
        config = load_config(cwd)
    except ConfigurationError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)

    if config.runs_db.exists():
        store = RunStore(config.runs_db)
        try:
            runs = store.get_runs(limit=1_000_000)
            store.reset()
        finally:
            store.close()
        print(f"Cleared {len(runs)} recorded run(s).")
    else:
        print("Nothing to reset: no run history found.")

    if artifacts:
        removed = 0
        for role in Role:
            for path in (config.session_path(role), config.store_path(role)):
                if path.exists():
                    path.unlink()
                    removed += 1
        print(f"Removed {removed} persisted artifact file(s). Run `escrow-harness bootstrap <role>` again.")
