"""
Requisition Domain Models.

The nouns of internal demand: a purchase requisition and its lines.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sourcing_kernel.domain.status import ParseableEnum


class RequisitionStatus(ParseableEnum):
    """Requisition lifecycle states."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    CONVERTED = "converted"  # to RFQ


class RequisitionPriority(ParseableEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class RequisitionDecision(ParseableEnum):
    """Approver's verdict on a submitted requisition."""
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class RequisitionLineInput:
    """A line as supplied by the requester, before it is stored."""
    item_code: str
    item_description: str
    quantity: Decimal
    unit: str
    material_id: UUID | None = None
    required_date: date | None = None
    specification: str | None = None
    estimated_unit_price: Decimal | None = None


@dataclass(frozen=True)
class RequisitionLine:
    """A stored line item on a purchase requisition."""
    id: UUID
    requisition_id: UUID
    line_number: int
    item_code: str
    item_description: str
    quantity: Decimal
    unit: str
    material_id: UUID | None = None
    required_date: date | None = None
    specification: str | None = None
    estimated_unit_price: Decimal | None = None

    @property
    def estimated_total(self) -> Decimal | None:
        if self.estimated_unit_price is None:
            return None
        return self.estimated_unit_price * self.quantity


@dataclass(frozen=True)
class Requisition:
    """A purchase requisition."""
    id: UUID
    company_id: UUID
    pr_number: str
    division_id: UUID
    status: RequisitionStatus
    priority: RequisitionPriority
    request_date: date
    required_by: date
    requested_by: UUID
    department_id: UUID | None = None
    factory_id: UUID | None = None
    notes: str | None = None
    submitted_at: datetime | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    approval_comments: str | None = None
    rejected_by: UUID | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    converted_rfq_id: UUID | None = None
    lines: tuple[RequisitionLine, ...] = field(default_factory=tuple)

    @property
    def estimated_total(self) -> Decimal:
        return sum(
            (line.estimated_total for line in self.lines if line.estimated_total is not None),
            Decimal("0"),
        )
