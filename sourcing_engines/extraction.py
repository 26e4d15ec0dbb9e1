"""
sourcing_engines.extraction -- Deterministic quotation extraction from email text.

Responsibility:
    Read item prices, quantities, delivery and warranty from a vendor's
    plain-text reply, matched against the RFQ's item codes, plus the
    commercial terms and validity of the offer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    ReconciliationService uses it directly, or as the fallback when an
    optional AI extractor is configured and fails.

Invariants enforced:
    - An RFQ item is matched at most once (first body line that names it
      and carries a price).
    - When no item line matches but the text carries prices, the result is
      a single ``LOT`` line at the highest price, with no item code.
    - Amounts are Decimal; totals are rounded with round_money.

Usage:
    result = extract_quotation(
        body=message.body,
        rfq_items=(RFQItem("MAT-001", "Steel bolts", Decimal("100"), "NOS"),),
        default_validity_days=30,
    )
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from sourcing_engines.comparison import RFQItem
from sourcing_engines.tracer import traced_engine
from sourcing_kernel.db.types import decimal_from_text, round_money

_NUMBER = r"(\d[\d,]*(?:\.\d+)?)"
_CURRENCY_PRICE = re.compile(r"(?:₹|\bRs\.?|\bINR)\s*" + _NUMBER, re.IGNORECASE)
_LABELLED_PRICE = re.compile(
    r"\b(?:unit\s*price|rate|price)\b\s*[:=@-]?\s*" + _NUMBER, re.IGNORECASE
)
_QUANTITY = re.compile(r"\b(?:qty|quantity)\b\.?\s*[:=-]?\s*" + _NUMBER, re.IGNORECASE)
_DELIVERY_DAYS = re.compile(r"\bdelivery\b[^\d\n]*(\d+)\s*days?\b", re.IGNORECASE)
_ANY_DAYS = re.compile(r"\b(\d+)\s*days?\b", re.IGNORECASE)
_WARRANTY = re.compile(r"\bwarranty\b\s*[:=-]?\s*([^,;\n]+)", re.IGNORECASE)
_PAYMENT_TERMS = re.compile(r"\bpayment\s+terms?\b\s*[:=-]\s*(.+)", re.IGNORECASE)
_DELIVERY_TERMS = re.compile(r"\bdelivery\s+terms?\b\s*[:=-]\s*(.+)", re.IGNORECASE)
_VALIDITY = re.compile(r"\bvalid(?:ity)?\b[^\d\n]*(\d+)\s*days?\b", re.IGNORECASE)

LOT_UNIT = "LOT"
LOT_DESCRIPTION = "Lot price as quoted"


@dataclass(frozen=True)
class ExtractedLine:
    item_code: str | None
    item_description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    total_amount: Decimal
    delivery_days: int | None = None
    warranty: str | None = None


@dataclass(frozen=True)
class ExtractedQuotation:
    lines: tuple[ExtractedLine, ...]
    payment_terms: str | None
    delivery_terms: str | None
    validity_days: int
    method: str = "deterministic"

    @property
    def has_items(self) -> bool:
        return bool(self.lines)

    @property
    def subtotal(self) -> Decimal:
        return sum((line.total_amount for line in self.lines), Decimal("0"))

    def as_dict(self) -> dict:
        """JSON-ready form stored on the response row."""
        return {
            "method": self.method,
            "payment_terms": self.payment_terms,
            "delivery_terms": self.delivery_terms,
            "validity_days": self.validity_days,
            "lines": [
                {
                    "item_code": line.item_code,
                    "item_description": line.item_description,
                    "quantity": str(line.quantity),
                    "unit": line.unit,
                    "unit_price": str(line.unit_price),
                    "total_amount": str(line.total_amount),
                    "delivery_days": line.delivery_days,
                    "warranty": line.warranty,
                }
                for line in self.lines
            ],
        }


def _first_price(text: str) -> Decimal | None:
    for pattern in (_CURRENCY_PRICE, _LABELLED_PRICE):
        match = pattern.search(text)
        if match:
            value = decimal_from_text(match.group(1))
            if value is not None:
                return value
    return None


def _all_currency_prices(text: str) -> list[Decimal]:
    prices = []
    for match in _CURRENCY_PRICE.finditer(text):
        value = decimal_from_text(match.group(1))
        if value is not None:
            prices.append(value)
    return prices


def _mentions(line: str, item_code: str) -> bool:
    pattern = r"(?<![\w-])" + re.escape(item_code) + r"(?![\w-])"
    return re.search(pattern, line, re.IGNORECASE) is not None


def _line_for_item(item: RFQItem, text: str) -> ExtractedLine | None:
    unit_price = _first_price(text)
    if unit_price is None:
        return None

    quantity = item.quantity
    qty_match = _QUANTITY.search(text)
    if qty_match:
        quantity = decimal_from_text(qty_match.group(1)) or item.quantity

    delivery_days = None
    days_match = _DELIVERY_DAYS.search(text) or _ANY_DAYS.search(text)
    if days_match:
        delivery_days = int(days_match.group(1))

    warranty = None
    warranty_match = _WARRANTY.search(text)
    if warranty_match:
        warranty = warranty_match.group(1).strip()

    return ExtractedLine(
        item_code=item.item_code,
        item_description=item.item_description,
        quantity=quantity,
        unit=item.unit,
        unit_price=unit_price,
        total_amount=round_money(unit_price * quantity),
        delivery_days=delivery_days,
        warranty=warranty,
    )


def _term(pattern: re.Pattern, body: str) -> str | None:
    match = pattern.search(body)
    return match.group(1).strip() if match else None


@traced_engine("quotation_extraction", "1.0")
def extract_quotation(
    *,
    body: str,
    rfq_items: Sequence[RFQItem],
    default_validity_days: int = 30,
) -> ExtractedQuotation:
    """Extract quoted lines and terms from a plain-text message body."""
    text_lines = [line.strip() for line in (body or "").splitlines() if line.strip()]

    extracted: list[ExtractedLine] = []
    for item in rfq_items:
        for text in text_lines:
            if not _mentions(text, item.item_code):
                continue
            line = _line_for_item(item, text)
            if line is not None:
                extracted.append(line)
                break

    if not extracted:
        prices = _all_currency_prices(body or "")
        if prices:
            lot_price = max(prices)
            extracted.append(
                ExtractedLine(
                    item_code=None,
                    item_description=LOT_DESCRIPTION,
                    quantity=Decimal("1"),
                    unit=LOT_UNIT,
                    unit_price=lot_price,
                    total_amount=round_money(lot_price),
                )
            )

    validity = _VALIDITY.search(body or "")
    return ExtractedQuotation(
        lines=tuple(extracted),
        payment_terms=_term(_PAYMENT_TERMS, body or ""),
        delivery_terms=_term(_DELIVERY_TERMS, body or ""),
        validity_days=int(validity.group(1)) if validity else default_validity_days,
    )
