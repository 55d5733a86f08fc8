"""Visible vocabulary of the escrow web client: control labels, messages, selectors."""
from __future__ import annotations

import re

BUTTONS = {
    "escrow": "Escrow",
    "decline": "Decline",
    "release": "Release",
    "dispute": "Dispute",
    "create_dispute": "Create dispute",
    "go_to_dispute": "Go to dispute",
    "resolve": "Resolve",
    "release_to_buyer": "Release to Buyer",
    "return_to_seller": "Return to Seller",
    "claim": "Claim",
    "claim_back_fee": "Claim back fee",
}

MESSAGES = {
    "order_detail": "Order detail",
    "escrow_success": "Order escrowed successfully",
    "release_success": "Order released successfully",
    "release_success_alt": "successfully released",
    "claim_funds": "claim",
    "confirmation_modal": "Confirmation",
    "reclaim_fee": "fee",
    "order_completed": "Order completed",
    "order_cancelled": "Order cancelled",
    "please_resolve_dispute": "Please resolve the dispute",
    "dispute_detail": "Dispute detail",
    "resolve_dispute": "Resolve dispute",
    "successfully_released": "successfully released",
    "successfully_returned": "successfully returned",
    "offer_created": "Offer created successfully!",
}

STATUS_SELECTOR = "text=/Status:/i"
STATUS_RE = re.compile(r"Status:\s*([A-Za-z]+)", re.IGNORECASE)

CHECKBOX = 'input[type="checkbox"]'
RADIO = 'input[type="radio"]'
CONFIRM_RELEASE = 'button.confirm-btn:has-text("RELEASE")'
DISPUTE_HEADING = 'h2:has-text("Create dispute")'
REASON_FIELD = (
    'input[placeholder*="Reason"], textarea[placeholder*="Reason"], '
    'input[name*="reason"], textarea[name*="reason"]'
)
BUYER_HANDLE_INPUT = "#input-buyer"
SELLER_HANDLE_INPUT = "#input-seller"
SELLER_TAB = "#full-width-tab-Seller"
HANDLE_RE = re.compile(r"@(\w+)")


def button(key: str) -> str:
    return f'button:has-text("{BUTTONS.get(key, key)}")'


def text(key: str) -> str:
    """Case-insensitive text selector for a known message (or literal text)."""
    return f"text=/{re.escape(MESSAGES.get(key, key))}/i"


def nth(selector: str, index: int | str) -> str:
    return f"{selector} >> nth={index}"


def parse_status(raw: str | None) -> str | None:
    """Extract the label from rendered status text, e.g. 'Status: Escrowed' -> 'Escrowed'."""
    if not raw:
        return None
    m = STATUS_RE.search(" ".join(raw.split()))
    return m.group(1).strip() if m else None
