"""escrow-harness inject <role>: restore a role's session and store once and report."""
from __future__ import annotations

import asyncio
import sys

from escrow_harness.config import load_config
from escrow_harness.errors import HarnessError
from escrow_harness.session.browser import launch_browser
from escrow_harness.session.credentials import CredentialStore
from escrow_harness.session.injector import InjectionReport, StateInjector


async def _inject(config, actor) -> InjectionReport:
    async with launch_browser(config) as browser:
        injected = await StateInjector(config).inject(browser, actor)
        await injected.context.close()
        return injected.report


def cmd_inject(role_name: str | None, cwd: str, headless: bool | None = None):
    try:
        config = load_config(cwd, role=role_name, headless=headless)
        role = config.require_role("inject")
        actor = CredentialStore.from_config(config).actor(role, config)
        report = asyncio.run(_inject(config, actor))
    except HarnessError as e:
        print(f"✗ Injection failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"✓ {report.role}: restored {report.record_count} store records in {report.elapsed:.1f}s")
