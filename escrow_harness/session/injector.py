"""Rehydrate a fresh browser context into a logged-in session with the wallet imported.

restore session -> neutral route -> delete store -> restore store -> verify

Every step has its own failure type; the first failure closes the
context and propagates. Nothing is retried.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError

from escrow_harness.errors import SessionRestoreError, StoreIntegrityError
from escrow_harness.session.artifacts import read_session, read_snapshot, require_artifacts
from escrow_harness.session.store import BrowserStore, compare_lengths

if TYPE_CHECKING:
    from collections.abc import Callable

    from playwright.async_api import Browser, BrowserContext, Page

    from escrow_harness.config import HarnessConfig
    from escrow_harness.types import Actor

logger = logging.getLogger(__name__)


@dataclass
class InjectionReport:
    role: str
    record_count: int
    elapsed: float


@dataclass
class InjectedSession:
    context: BrowserContext
    page: Page
    report: InjectionReport


class StateInjector:
    def __init__(
        self,
        config: HarnessConfig,
        store_factory: Callable[[Page, str, str], BrowserStore] = BrowserStore,
    ):
        self.config = config
        self.store_factory = store_factory

    async def inject(self, browser: Browser, actor: Actor) -> InjectedSession:
        # both artifacts must be readable before any browser work starts
        require_artifacts(actor)
        session_state = read_session(actor)
        snapshot = read_snapshot(actor)

        loop = asyncio.get_running_loop()
        start = loop.time()
        context = await self._open_context(browser, actor, session_state)
        try:
            page = await context.new_page()
            await self._goto_init(page)
            count = await self.rehydrate(page, snapshot)
        except BaseException:
            await context.close()
            raise

        report = InjectionReport(actor.role.value, count, loop.time() - start)
        logger.info(
            "%s: injected session + %d store records in %.1fs", actor.role, count, report.elapsed
        )
        return InjectedSession(context=context, page=page, report=report)

    async def _open_context(
        self, browser: Browser, actor: Actor, session_state: dict[str, Any]
    ) -> BrowserContext:
        try:
            context = await browser.new_context(storage_state=session_state)
        except PlaywrightError as e:
            raise SessionRestoreError(
                f"Could not restore session for {actor.role} from {actor.session_artifact_path}: {e}"
            ) from e
        context.set_default_timeout(self.config.element_timeout * 1000)
        return context

    async def _goto_init(self, page: Page) -> None:
        url = self.config.url(self.config.init_route)
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.config.navigation_timeout * 1000)
        except PlaywrightError as e:
            raise SessionRestoreError(f"Could not open {url} to initialize the store: {e}") from e

    async def rehydrate(self, page: Page, snapshot: dict[str, Any]) -> int:
        """Wipe and rewrite the wallet store on ``page``'s origin, then verify it."""
        store = self.store_factory(page, self.config.store_db_name, self.config.store_name)
        await store.delete()
        await store.restore(snapshot)
        return await self.verify(store, snapshot)

    async def verify(self, store: BrowserStore, snapshot: dict[str, Any]) -> int:
        expected = len(snapshot)
        actual = await store.count()
        if actual != expected:
            raise StoreIntegrityError(
                f"Store holds {actual} records after restore, snapshot has {expected}",
                expected=expected,
                actual=actual,
            )
        live, captured = await store.lengths(snapshot)
        bad = compare_lengths(live, captured)
        if bad:
            raise StoreIntegrityError(
                f"Restored store differs from snapshot for keys: {', '.join(bad)}",
                expected=expected,
                actual=actual,
                keys=bad,
            )
        return actual
