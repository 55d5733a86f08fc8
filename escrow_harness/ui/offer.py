"""Offer creation and order placement flows.

These are the only UI scripts that are not a single state-machine
recipe: offer creation walks a multi-page form whose fields depend on
the payment method drawn for the run.
"""
from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from escrow_harness.errors import VerificationError
from escrow_harness.ui import controls as ui

if TYPE_CHECKING:
    from escrow_harness.session.actor import ActorSession

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("Bank transfer", "Cash in person", "Payment app", "Crypto", "Goods/Services")
COINS = ("BTC:1", "BCH:100", "ETH:100", "XPI:1000000", "DOGE:100", "XRP:100", "LTC:100")
PAYMENT_APPS = (
    "AirTM", "Alipay", "AppleCash", "Cash app", "Google Pay", "Mercado Pago", "Momo", "N26",
    "PayPal", "Payoneer", "Revolut", "Skrill", "Venmo", "WeChat Pay", "Wise (TransferWise)", "ZaloPay", "Zelle",
)
FIAT_CURRENCY = "VND:1000000"
VISIBILITY = ("Listed", "Unlisted")

ORDER_ID_RE = re.compile(r"order-detail\?id=([\w-]+)")


@dataclass
class OfferDraft:
    payment_method: str
    min_amount: str
    max_amount: str
    headline: str
    visibility: str
    coin: str | None = None
    payment_app: str | None = None
    increments: int = 0


def draft_offer(rng: random.Random, now: datetime | None = None) -> OfferDraft:
    """Draw the random choices for one offer up front so a run can be reproduced from its seed."""
    method = rng.choice(PAYMENT_METHODS)
    now = now or datetime.now(tz=UTC)
    headline = f"Local eCash Offer {now.strftime('%Y%m%d%H%M%S')}"
    draft = OfferDraft(method, "100", "1000", headline, rng.choice(VISIBILITY))
    if method == "Crypto":
        draft.coin = rng.choice(COINS)
        denomination = int(draft.coin.split(":")[1])
        draft.min_amount = str(denomination)
        draft.max_amount = str(denomination * 10)
    elif method == "Payment app":
        draft.payment_app = rng.choice(PAYMENT_APPS)
        draft.increments = rng.randrange(6)
    elif method == "Bank transfer":
        draft.increments = rng.randrange(6)
    elif method == "Cash in person":
        draft.increments = 3
    return draft


async def create_offer(session: ActorSession, draft: OfferDraft) -> OfferDraft:
    logger.info("%s creating %s offer %r", session.role, draft.payment_method, draft.headline)
    await session.goto(session.config.base_url)
    await session.perform_action("click", 'div:has-text("My offers") >> button')
    await session.perform_action("click", ui.button("Create"))
    await session.perform_action("check", f'label:has-text("{draft.payment_method}") >> input')

    match draft.payment_method:
        case "Crypto":
            await session.perform_action("select", "#select-coin", draft.coin)
        case "Payment app":
            await session.perform_action("select", "#select-paymentApp", draft.payment_app)
            await session.perform_action("select", "#select-currency", FIAT_CURRENCY)
        case "Cash in person" | "Bank transfer":
            await session.perform_action("select", "#select-currency", FIAT_CURRENCY)

    await session.perform_action("click", ui.button("Next"))
    for _ in range(draft.increments):
        await session.perform_action("click", ui.button("+"))
    await session.perform_action("fill", "input#min", draft.min_amount)
    await session.perform_action("fill", 'input[name="max"]', draft.max_amount)

    await session.perform_action("fill", 'label:has-text("Headline") >> xpath=.. >> input', draft.headline)
    await session.perform_action("click", ui.button("Preview"))
    listed_value = "false" if draft.visibility == "Listed" else "true"
    await session.perform_action("check", f'input[value="{listed_value}"]')
    await session.perform_action("click", ui.button("Create offer"))

    await session.wait_for_text(ui.text("offer_created"))
    await session.wait_for_text(f'text="Headline: {draft.headline}"')
    return draft


async def create_order(session: ActorSession, offer_id: str, amount: str = "") -> str:
    """Place an order against ``offer_id`` and return the new order id from the detail URL."""
    await session.goto(session.config.url(f"offer-detail?id={offer_id}"))
    await session.perform_action("click", ui.button("Buy"))
    if amount:
        await session.perform_action("fill", "input#amount", amount)
    await session.perform_action("click", ui.button("Create order"))
    await session.wait_for_text(ui.text("order_detail"))

    order_id = order_id_from_url(session.page.url)
    logger.info("%s created order %s", session.role, order_id)
    return order_id


def order_id_from_url(url: str) -> str:
    m = ORDER_ID_RE.search(url)
    if not m:
        raise VerificationError(f"Order page URL has no id: {url}")
    return m.group(1)
