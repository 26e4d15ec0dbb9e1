"""
RFQ Domain Models.

Requests for quotation, the vendors invited to answer them, and the log
of every email sent or received about them.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sourcing_kernel.domain.status import ParseableEnum


class RFQStatus(ParseableEnum):
    """RFQ lifecycle states."""
    DRAFT = "draft"
    OPEN = "open"
    SENT = "sent"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    AWARDED = "awarded"


class DispatchDirection(ParseableEnum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"


class EmailType(ParseableEnum):
    RFQ_SENT = "rfq_sent"
    REMINDER_SENT = "reminder_sent"
    QUOTATION_RECEIVED = "quotation_received"
    QUOTATION_ACKNOWLEDGMENT = "quotation_acknowledgment"


class DispatchStatus(ParseableEnum):
    SENT = "sent"
    FAILED = "failed"
    RECEIVED = "received"


@dataclass(frozen=True)
class RFQTerms:
    """Commercial terms stated on an RFQ."""
    payment_terms: str | None = None
    delivery_terms: str | None = None
    special_instructions: str | None = None
    expected_delivery_date: date | None = None
    validity_days: int | None = None


@dataclass(frozen=True)
class RFQLineInput:
    item_code: str
    item_description: str
    quantity: Decimal
    unit: str
    material_id: UUID | None = None
    required_date: date | None = None
    specification: str | None = None
    estimated_unit_price: Decimal | None = None
    source_requisition_line_id: UUID | None = None


@dataclass(frozen=True)
class RFQLine:
    id: UUID
    rfq_id: UUID
    line_number: int
    item_code: str
    item_description: str
    quantity: Decimal
    unit: str
    material_id: UUID | None = None
    required_date: date | None = None
    specification: str | None = None
    estimated_unit_price: Decimal | None = None
    source_requisition_line_id: UUID | None = None


@dataclass(frozen=True)
class VendorInvitation:
    """A vendor asked to quote on an RFQ, with its dispatch flags."""
    id: UUID
    rfq_id: UUID
    vendor_id: UUID
    email_sent: bool = False
    email_sent_at: datetime | None = None
    response_received: bool = False
    response_received_at: datetime | None = None
    reminder_count: int = 0
    last_reminder_at: datetime | None = None


@dataclass(frozen=True)
class RFQ:
    """A request for quotation."""
    id: UUID
    company_id: UUID
    rfq_number: str
    status: RFQStatus
    issue_date: date
    submission_deadline: datetime
    validity_days: int
    requisition_id: UUID | None = None
    expected_delivery_date: date | None = None
    payment_terms: str | None = None
    delivery_terms: str | None = None
    special_instructions: str | None = None
    sent_at: datetime | None = None
    closed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    awarded_at: datetime | None = None
    lines: tuple[RFQLine, ...] = field(default_factory=tuple)
    invitations: tuple[VendorInvitation, ...] = field(default_factory=tuple)

    @property
    def vendor_ids(self) -> tuple[UUID, ...]:
        return tuple(inv.vendor_id for inv in self.invitations)

    def invitation_for(self, vendor_id: UUID) -> VendorInvitation | None:
        for inv in self.invitations:
            if inv.vendor_id == vendor_id:
                return inv
        return None


@dataclass(frozen=True)
class EmailDispatchEntry:
    """One row of the append-only email log."""
    id: UUID
    rfq_id: UUID
    vendor_id: UUID | None
    direction: DispatchDirection
    email_type: EmailType
    status: DispatchStatus
    occurred_at: datetime
    address: str | None = None
    subject: str | None = None
    external_message_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class VendorDispatchResult:
    """Outcome of emailing one vendor."""
    vendor_id: UUID
    success: bool
    email_address: str | None = None
    message_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class DispatchReport:
    """Outcome of one send, resend or reminder run for an RFQ."""
    rfq_id: UUID
    rfq_number: str
    email_type: EmailType
    results: tuple[VendorDispatchResult, ...]

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def failures(self) -> tuple[VendorDispatchResult, ...]:
        return tuple(r for r in self.results if not r.success)


@dataclass(frozen=True)
class ReminderReport:
    """Outcome of a reminder sweep across all overdue RFQs."""
    rfqs_checked: int
    reports: tuple[DispatchReport, ...]

    @property
    def reminders_sent(self) -> int:
        return sum(r.sent_count for r in self.reports)

    @property
    def reminders_failed(self) -> int:
        return sum(r.failed_count for r in self.reports)
