"""
Quotation Domain Models.

Vendor replies as received (quotation responses), the priced quotations
read from them, the buyer's per-item vendor selections, and the reports
returned by ingestion, the inbox run and the dedup sweep.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sourcing_kernel.domain.status import ParseableEnum
from sourcing_kernel.exceptions import ReconciliationPartialFailure


class QuotationStatus(ParseableEnum):
    """Quotation lifecycle states."""
    RECEIVED = "received"
    UNDER_REVIEW = "under_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class ResponseProcessingStatus(ParseableEnum):
    PENDING_REVIEW = "pending_review"
    REVIEWED = "reviewed"
    FAILED = "failed"


class IngestionAction(ParseableEnum):
    CREATED = "created"
    DUPLICATE = "duplicate"


class InboxAction(ParseableEnum):
    INGESTED = "ingested"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    FAILED = "failed"


# -----------------------------------------------------------------------------
# Quotations
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class QuotationLineInput:
    """A priced line entered by a buyer or read from a reply.

    ``item_code`` is None for a lot price that covers the whole RFQ.
    ``total_amount`` defaults to unit price times quantity.
    """
    item_code: str | None
    item_description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    total_amount: Decimal | None = None
    delivery_days: int | None = None
    warranty: str | None = None


@dataclass(frozen=True)
class QuotationLine:
    id: UUID
    quotation_id: UUID
    line_number: int
    item_code: str | None
    item_description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    total_amount: Decimal
    delivery_days: int | None = None
    warranty: str | None = None


@dataclass(frozen=True)
class Quotation:
    id: UUID
    company_id: UUID
    quotation_number: str
    rfq_id: UUID
    vendor_id: UUID
    status: QuotationStatus
    quotation_date: date
    received_at: datetime
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    response_id: UUID | None = None
    valid_until: date | None = None
    payment_terms: str | None = None
    delivery_terms: str | None = None
    warranty_terms: str | None = None
    notes: str | None = None
    lines: tuple[QuotationLine, ...] = field(default_factory=tuple)


# -----------------------------------------------------------------------------
# Responses and ingestion
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class QuotationResponse:
    """One stored vendor reply to an RFQ."""
    id: UUID
    company_id: UUID
    rfq_id: UUID
    vendor_id: UUID
    external_message_id: str
    from_address: str
    subject: str
    received_at: datetime
    processing_status: ResponseProcessingStatus
    created_at: datetime
    body: str | None = None
    attachments: tuple[dict, ...] = ()
    extracted_data: dict | None = None
    quotation_id: UUID | None = None
    processed_at: datetime | None = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None


@dataclass(frozen=True)
class IngestionResult:
    """
    Outcome of ``ReconciliationService.ingest_response``.

    For a duplicate, ``response`` is the canonical (earliest) stored reply
    and nothing was written.  ``acknowledged`` is None when no
    acknowledgment was attempted.
    """
    action: IngestionAction
    response: QuotationResponse
    quotation: Quotation | None = None
    acknowledged: bool | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.action is IngestionAction.DUPLICATE


@dataclass(frozen=True)
class InboxMessageOutcome:
    external_message_id: str
    action: InboxAction
    reason: str | None = None
    rfq_number: str | None = None
    vendor_id: UUID | None = None
    response_id: UUID | None = None


@dataclass(frozen=True)
class InboxReport:
    account: str
    outcomes: tuple[InboxMessageOutcome, ...]

    def _count(self, action: InboxAction) -> int:
        return sum(1 for o in self.outcomes if o.action is action)

    @property
    def ingested(self) -> int:
        return self._count(InboxAction.INGESTED)

    @property
    def duplicates(self) -> int:
        return self._count(InboxAction.DUPLICATE)

    @property
    def skipped(self) -> int:
        return self._count(InboxAction.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(InboxAction.FAILED)


# -----------------------------------------------------------------------------
# Dedup sweep
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class GroupOutcome:
    """Result of cleaning one duplicate group."""
    key: str
    keep_id: UUID
    discard_ids: tuple[UUID, ...]
    success: bool
    records_deleted: int = 0
    quotations_deleted: int = 0
    log_rows_pruned: int = 0
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class DedupSweepSummary:
    groups_found: int
    records_deleted: int
    log_rows_pruned: int
    outcomes: tuple[GroupOutcome, ...]
    current_summary: dict[str, int]

    @property
    def errors(self) -> tuple[tuple[str, str], ...]:
        return tuple(
            (o.key, o.error_message or "")
            for o in self.outcomes
            if not o.success
        )

    @property
    def has_failures(self) -> bool:
        return any(not o.success for o in self.outcomes)

    def raise_for_failures(self) -> None:
        if self.has_failures:
            raise ReconciliationPartialFailure(self.errors)

    def as_dict(self) -> dict:
        return {
            "groups_found": self.groups_found,
            "records_deleted": self.records_deleted,
            "log_rows_pruned": self.log_rows_pruned,
            "errors": [{"key": key, "error": error} for key, error in self.errors],
            "current_summary": dict(self.current_summary),
        }


# -----------------------------------------------------------------------------
# Vendor selection
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class VendorSelection:
    item_code: str
    vendor_id: UUID
    reason: str | None = None


@dataclass(frozen=True)
class ComparisonDecision:
    """An immutable record of the vendor chosen for one RFQ item."""
    id: UUID
    rfq_id: UUID
    item_code: str
    selected_vendor_id: UUID
    decided_by: UUID
    decided_at: datetime
    quotation_id: UUID | None = None
    selection_reason: str | None = None
