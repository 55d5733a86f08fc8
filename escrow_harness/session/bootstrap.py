"""One-time interactive login + wallet import that produces a role's persisted artifacts.

The identity provider confirms the login on the operator's phone, so this
runs headed and waits (bounded by ``bootstrap_timeout``) for a human.
Once the wallet store is populated, the storage state and the full store
dump are captured and written together.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError

from escrow_harness.errors import BootstrapError, IntegrityError
from escrow_harness.session.artifacts import write_pair
from escrow_harness.session.store import BrowserStore

if TYPE_CHECKING:
    from collections.abc import Callable

    from playwright.async_api import Browser, BrowserContext, Page

    from escrow_harness.config import HarnessConfig
    from escrow_harness.types import Actor

logger = logging.getLogger(__name__)

MENU_BUTTON = ".MuiButtonBase-root"
IMPORT_BUTTON_NAME = "Import"
RECOVERY_FIELD_NAME = "Enter your recovery phrase ("


class SessionBootstrapper:
    def __init__(
        self,
        config: HarnessConfig,
        store_factory: Callable[[Page, str, str], BrowserStore] = BrowserStore,
    ):
        self.config = config
        self.store_factory = store_factory

    async def bootstrap(self, browser: Browser, actor: Actor) -> int:
        """Log in, import the wallet, capture both artifacts. Returns the store key count."""
        context = await browser.new_context()
        try:
            await context.clear_cookies()
            page = await context.new_page()
            try:
                await self._login(page, actor)
                await self._import_wallet(page, actor)
                store = self.store_factory(page, self.config.store_db_name, self.config.store_name)
                await self._wait_for_wallet(store)
                snapshot = await store.dump()
                session_state = await context.storage_state()
            except (PlaywrightError, IntegrityError) as e:
                raise BootstrapError(f"Interactive login for {actor.role} failed: {e}") from e

            if not snapshot:
                raise BootstrapError(f"Wallet store for {actor.role} is empty; nothing to capture")
            write_pair(actor, session_state, snapshot)
            logger.info("%s: captured session and %d store keys", actor.role, len(snapshot))
            return len(snapshot)
        finally:
            await context.close()

    async def _login(self, page: Page, actor: Actor) -> None:
        await page.goto(self.config.base_url)
        await page.locator(MENU_BUTTON).first.click()
        await page.get_by_role("button", name="Log In").click()

        bot = self.config.bot_name
        frame = page.frame_locator(f"#telegram-login-{bot}")
        login = frame.get_by_role("button", name="Log in with Telegram")
        await login.wait_for(state="visible")

        async with page.expect_popup() as popup_info:
            await login.click()
        popup = await popup_info.value
        if "bot_id=" not in popup.url:
            raise BootstrapError(f"Identity provider popup URL has no bot_id parameter: {popup.url}")
        await popup.wait_for_load_state("networkidle")

        creds = actor.credentials
        if creds.phone_code:
            await popup.locator("#login-phone-code").fill(creds.phone_code)
        await popup.locator("#login-phone").fill(creds.phone_number)
        await popup.get_by_role("button", name="Next").click()
        logger.info("%s: confirm the login on the phone ending %s", actor.role, creds.phone_number[-3:])

    async def _import_wallet(self, page: Page, actor: Actor) -> None:
        timeout_ms = self.config.bootstrap_timeout * 1000
        import_button = page.get_by_role("button", name=IMPORT_BUTTON_NAME)
        await import_button.wait_for(state="visible", timeout=timeout_ms)
        await import_button.click()
        await page.get_by_role("textbox", name=RECOVERY_FIELD_NAME).fill(actor.credentials.recovery_phrase)
        await page.get_by_role("button", name=IMPORT_BUTTON_NAME).click()
        await page.wait_for_load_state("networkidle")

    async def _wait_for_wallet(self, store: BrowserStore) -> None:
        """The wallet writes its keys asynchronously after import; wait until they land."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.bootstrap_timeout
        previous = -1
        while loop.time() < deadline:
            count = await store.count()
            # two equal, non-empty reads in a row: the import has finished writing
            if count and count == previous:
                return
            previous = count
            await asyncio.sleep(self.config.poll_interval)
        raise BootstrapError(f"Wallet store never settled within {self.config.bootstrap_timeout:.0f}s")
