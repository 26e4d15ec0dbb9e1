"""
sourcing_engines.classification -- Keyword classification of inbound vendor email.

Responsibility:
    Decide what an inbound message is about, who sent it, and which RFQ it
    answers, without any model or network call.  This is the path that
    always holds, whether or not an AI classifier is wired in.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Used by ReconciliationService.process_inbox.

Invariants enforced:
    - Rules are evaluated in a fixed order; the first match wins.
    - RFQ numbers are returned upper-cased, subject before body.
    - Sender addresses are returned lower-cased and stripped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class EmailCategory(str, Enum):
    QUOTATION = "quotation"
    INVOICE = "invoice"
    PURCHASE_ORDER_ACK = "purchase_order_ack"
    DELIVERY_UPDATE = "delivery_update"
    PAYMENT_CONFIRMATION = "payment_confirmation"
    GENERAL = "general"


@dataclass(frozen=True)
class Classification:
    category: EmailCategory
    confidence: float
    matched_rule: str


_RFQ_NUMBER = re.compile(r"\bRFQ-\d{4}-\d{4,}\b", re.IGNORECASE)
_ANGLE_ADDRESS = re.compile(r"<\s*([^<>\s]+@[^<>\s]+)\s*>")


def classify_email(subject: str, body: str = "") -> Classification:
    """Classify a message by keywords in its subject and body."""
    text = f"{subject}\n{body}".lower()

    if "quotation" in text or "quote" in text:
        return Classification(EmailCategory.QUOTATION, 0.7, "quotation_keyword")
    if "invoice" in text or "bill" in text:
        return Classification(EmailCategory.INVOICE, 0.7, "invoice_keyword")
    if "purchase order" in text and "acknowledg" in text:
        return Classification(EmailCategory.PURCHASE_ORDER_ACK, 0.7, "po_ack_keyword")
    if "delivery" in text or "dispatch" in text:
        return Classification(EmailCategory.DELIVERY_UPDATE, 0.6, "delivery_keyword")
    if "payment" in text and "received" in text:
        return Classification(EmailCategory.PAYMENT_CONFIRMATION, 0.6, "payment_keyword")
    return Classification(EmailCategory.GENERAL, 0.3, "no_keyword")


def parse_sender(from_header: str) -> tuple[str | None, str]:
    """Split ``Name <addr@host>`` into (name, address).

    A bare address yields (None, address).
    """
    match = _ANGLE_ADDRESS.search(from_header)
    if match is None:
        return None, from_header.strip().lower()
    name = from_header[: match.start()].strip().strip('"').strip() or None
    return name, match.group(1).lower()


def find_rfq_number(subject: str, body: str = "") -> str | None:
    """Return the first RFQ number in the subject, else in the body."""
    for text in (subject, body):
        match = _RFQ_NUMBER.search(text or "")
        if match:
            return match.group(0).upper()
    return None
