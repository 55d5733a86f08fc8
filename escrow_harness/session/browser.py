"""Playwright browser lifecycle and the per-role session factory."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Protocol

from playwright.async_api import async_playwright

from escrow_harness.engine.machine import DEFAULT_MACHINE, OrderStateMachine
from escrow_harness.session.actor import ActorSession
from escrow_harness.session.artifacts import require_artifacts
from escrow_harness.session.injector import StateInjector

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from contextlib import AbstractAsyncContextManager

    from playwright.async_api import Browser, Playwright

    from escrow_harness.config import HarnessConfig
    from escrow_harness.session.credentials import CredentialStore
    from escrow_harness.types import Role

logger = logging.getLogger(__name__)

LAUNCH_ARGS = ["--window-size=1280,720", "--disable-dev-shm-usage"]


class SessionFactory(Protocol):
    def preflight(self, role: Role) -> None: ...

    def open(self, role: Role) -> AbstractAsyncContextManager[ActorSession]: ...


@asynccontextmanager
async def launch_browser(config: HarnessConfig) -> AsyncIterator[Browser]:
    async with async_playwright() as p:
        browser = await _launch(p, config)
        try:
            yield browser
        finally:
            await browser.close()


async def _launch(p: Playwright, config: HarnessConfig) -> Browser:
    logger.info("Launching chromium (headless=%s)", config.headless)
    return await p.chromium.launch(headless=config.headless, args=LAUNCH_ARGS)


class BrowserSessionFactory:
    """Opens state-injected ActorSessions, one isolated BrowserContext each."""

    def __init__(
        self,
        browser: Browser,
        config: HarnessConfig,
        credentials: CredentialStore,
        *,
        injector: StateInjector | None = None,
        machine: OrderStateMachine = DEFAULT_MACHINE,
    ):
        self.browser = browser
        self.config = config
        self.credentials = credentials
        self.injector = injector or StateInjector(config)
        self.machine = machine

    def preflight(self, role: Role) -> None:
        """Fail with a setup error before any context opens if a role cannot be injected."""
        require_artifacts(self.credentials.actor(role, self.config))

    @asynccontextmanager
    async def open(self, role: Role) -> AsyncIterator[ActorSession]:
        actor = self.credentials.actor(role, self.config)
        injected = await self.injector.inject(self.browser, actor)
        session = ActorSession(
            actor, injected.page, self.config, context=injected.context, machine=self.machine
        )
        try:
            yield session
        finally:
            await session.close()
