"""
sourcing_engines.comparison -- Side-by-side ranking of vendor quotations for an RFQ.

Responsibility:
    Build the per-item price matrix and the overall vendor ranking that a
    buyer uses to select vendors.  Computed on read, never persisted.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    ComparisonService loads the RFQ, its lines and the eligible quotations,
    projects them to the value objects below, and calls ``ComparisonEngine``.

Invariants enforced:
    - Eligibility: only quotations in ``received`` or ``under_review``
      participate.  Others are reported in ``excluded_quotation_ids``.
    - One quotation per vendor: when a vendor has several eligible
      quotations, the most recently received one is compared.
    - Item ordering: unit price ascending, then vendor id ascending.
    - Overall ordering: total amount ascending, then vendor id ascending.
    - Decimal-only arithmetic; no float intermediates.

Failure modes:
    - None.  An RFQ with no eligible quotations yields empty rankings.

Usage:
    engine = ComparisonEngine()
    result = engine.compare(
        rfq_id=rfq.id,
        rfq_number=rfq.rfq_number,
        items=items,
        quotations=quotations,
    )
    cheapest = result.items[0].quotes[0]
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sourcing_engines.tracer import traced_engine
from sourcing_kernel.db.types import round_money

ELIGIBLE_STATUSES: frozenset[str] = frozenset({"received", "under_review"})


@dataclass(frozen=True)
class RFQItem:
    """A line the buyer asked vendors to price."""

    item_code: str
    item_description: str
    quantity: Decimal
    unit: str


@dataclass(frozen=True)
class QuotedLine:
    item_code: str | None
    unit_price: Decimal
    total_amount: Decimal | None = None
    delivery_days: int | None = None
    warranty: str | None = None


@dataclass(frozen=True)
class VendorQuotation:
    """A vendor's quotation as seen by the comparison."""

    quotation_id: UUID
    quotation_number: str
    vendor_id: UUID
    vendor_name: str
    vendor_rating: Decimal | None
    status: str
    total_amount: Decimal
    quotation_date: date
    valid_until: date | None
    received_at: datetime
    lines: tuple[QuotedLine, ...]
    payment_terms: str | None = None
    delivery_terms: str | None = None

    @property
    def validity_days(self) -> int | None:
        if self.valid_until is None:
            return None
        return (self.valid_until - self.quotation_date).days


@dataclass(frozen=True)
class ItemQuote:
    """One vendor's price for one RFQ item."""

    rank: int
    vendor_id: UUID
    vendor_name: str
    vendor_rating: Decimal | None
    quotation_id: UUID
    unit_price: Decimal
    total_amount: Decimal
    delivery_days: int | None
    warranty: str | None


@dataclass(frozen=True)
class ItemComparison:
    item_code: str
    item_description: str
    quantity: Decimal
    unit: str
    quotes: tuple[ItemQuote, ...]

    @property
    def lowest(self) -> ItemQuote | None:
        return self.quotes[0] if self.quotes else None


@dataclass(frozen=True)
class VendorRanking:
    rank: int
    vendor_id: UUID
    vendor_name: str
    vendor_rating: Decimal | None
    quotation_id: UUID
    quotation_number: str
    total_amount: Decimal
    payment_terms: str | None
    delivery_terms: str | None
    valid_until: date | None
    validity_days: int | None


@dataclass(frozen=True)
class RFQComparison:
    """Full comparison result for one RFQ."""

    rfq_id: UUID
    rfq_number: str
    items: tuple[ItemComparison, ...]
    overall: tuple[VendorRanking, ...]
    excluded_quotation_ids: tuple[UUID, ...] = ()

    @property
    def vendor_count(self) -> int:
        return len(self.overall)

    def item(self, item_code: str) -> ItemComparison | None:
        for entry in self.items:
            if entry.item_code == item_code:
                return entry
        return None


class ComparisonEngine:
    """
    Stateless ranking engine.

    Contract:
        ``compare`` is deterministic: identical inputs, in any order,
        produce identical output.
    """

    @traced_engine("comparison", "1.0", fingerprint_fields=("rfq_id", "quotations"))
    def compare(
        self,
        *,
        rfq_id: UUID,
        rfq_number: str,
        items: Sequence[RFQItem],
        quotations: Sequence[VendorQuotation],
    ) -> RFQComparison:
        eligible, excluded = self._select_eligible(quotations)

        item_rows = tuple(self._compare_item(item, eligible) for item in items)

        ordered = sorted(eligible, key=lambda q: (q.total_amount, q.vendor_id))
        overall = tuple(
            VendorRanking(
                rank=position,
                vendor_id=q.vendor_id,
                vendor_name=q.vendor_name,
                vendor_rating=q.vendor_rating,
                quotation_id=q.quotation_id,
                quotation_number=q.quotation_number,
                total_amount=q.total_amount,
                payment_terms=q.payment_terms,
                delivery_terms=q.delivery_terms,
                valid_until=q.valid_until,
                validity_days=q.validity_days,
            )
            for position, q in enumerate(ordered, start=1)
        )

        return RFQComparison(
            rfq_id=rfq_id,
            rfq_number=rfq_number,
            items=item_rows,
            overall=overall,
            excluded_quotation_ids=tuple(sorted(excluded)),
        )

    def _select_eligible(
        self, quotations: Sequence[VendorQuotation],
    ) -> tuple[list[VendorQuotation], list[UUID]]:
        latest: dict[UUID, VendorQuotation] = {}
        excluded: list[UUID] = []
        for q in quotations:
            if q.status not in ELIGIBLE_STATUSES:
                excluded.append(q.quotation_id)
                continue
            current = latest.get(q.vendor_id)
            if current is None or (q.received_at, q.quotation_number) > (
                current.received_at, current.quotation_number,
            ):
                if current is not None:
                    excluded.append(current.quotation_id)
                latest[q.vendor_id] = q
            else:
                excluded.append(q.quotation_id)
        return list(latest.values()), excluded

    def _compare_item(
        self, item: RFQItem, quotations: Sequence[VendorQuotation],
    ) -> ItemComparison:
        offers: list[tuple[VendorQuotation, QuotedLine]] = []
        for q in quotations:
            for line in q.lines:
                if line.item_code == item.item_code:
                    offers.append((q, line))
                    break

        offers.sort(key=lambda pair: (pair[1].unit_price, pair[0].vendor_id))
        quotes = tuple(
            ItemQuote(
                rank=position,
                vendor_id=q.vendor_id,
                vendor_name=q.vendor_name,
                vendor_rating=q.vendor_rating,
                quotation_id=q.quotation_id,
                unit_price=line.unit_price,
                total_amount=(
                    line.total_amount
                    if line.total_amount is not None
                    else round_money(line.unit_price * item.quantity)
                ),
                delivery_days=line.delivery_days,
                warranty=line.warranty,
            )
            for position, (q, line) in enumerate(offers, start=1)
        )
        return ItemComparison(
            item_code=item.item_code,
            item_description=item.item_description,
            quantity=item.quantity,
            unit=item.unit,
            quotes=quotes,
        )
