"""escrow-harness bootstrap <role>: interactive login that captures a role's persisted artifacts."""
from __future__ import annotations

import asyncio
import sys

from escrow_harness.config import load_config
from escrow_harness.errors import HarnessError
from escrow_harness.session.bootstrap import SessionBootstrapper
from escrow_harness.session.browser import launch_browser
from escrow_harness.session.credentials import CredentialStore


async def _bootstrap(config, actor) -> int:
    async with launch_browser(config) as browser:
        bootstrapper = SessionBootstrapper(config)
        async with asyncio.timeout(config.bootstrap_timeout):
            return await bootstrapper.bootstrap(browser, actor)


def cmd_bootstrap(role_name: str | None, cwd: str, headless: bool = False):
    try:
        # the login is confirmed by a human, so the browser is visible unless asked otherwise
        config = load_config(cwd, role=role_name, headless=headless)
        role = config.require_role("bootstrap")
        actor = CredentialStore.from_config(config).actor(role, config)
    except HarnessError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Bootstrapping {role} against {config.base_url}")
    print("Confirm the login in Telegram when prompted.")
    try:
        count = asyncio.run(_bootstrap(config, actor))
    except TimeoutError:
        print(f"✗ Login was not completed within {config.bootstrap_timeout:.0f}s", file=sys.stderr)
        sys.exit(1)
    except HarnessError as e:
        print(f"✗ Bootstrap failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"✓ {role}: captured {count} store records")
    print(f"  session: {actor.session_artifact_path}")
    print(f"  store:   {actor.store_snapshot_path}")
