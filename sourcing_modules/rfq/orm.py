"""
SQLAlchemy ORM persistence models for the RFQ module.

Responsibility
--------------
Persist requests for quotation, their lines, vendor invitations and the
email dispatch log.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``RFQService``,
``RequisitionService.convert_to_rfq`` and the quotation services.

Invariants enforced
-------------------
* ``rfq_number`` is unique per company.
* One invitation per (rfq, vendor).
* ``EmailDispatchLogModel`` rows are appended, never edited.
* Vendor ids reference external master data and carry no foreign key.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sourcing_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# RFQModel
# ---------------------------------------------------------------------------


class RFQModel(TrackedBase):
    """
    A request for quotation.

    Maps to the ``RFQ`` DTO in ``sourcing_modules.rfq.models``.
    """

    __tablename__ = "rfqs"

    __table_args__ = (
        UniqueConstraint("company_id", "rfq_number", name="uq_rfq_number"),
        Index("idx_rfq_company_status", "company_id", "status"),
        Index("idx_rfq_deadline", "submission_deadline"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False)
    rfq_number: Mapped[str] = mapped_column(String(64), nullable=False)
    requisition_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_requisitions.id"), nullable=True,
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    submission_deadline: Mapped[datetime] = mapped_column(nullable=False)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(500), nullable=True)
    delivery_terms: Mapped[str | None] = mapped_column(String(500), nullable=True)
    special_instructions: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    validity_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    sent_at: Mapped[datetime | None]
    closed_at: Mapped[datetime | None]
    cancelled_at: Mapped[datetime | None]
    cancellation_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    awarded_at: Mapped[datetime | None]

    lines: Mapped[list["RFQLineModel"]] = relationship(
        "RFQLineModel",
        back_populates="rfq",
        cascade="all, delete-orphan",
        order_by="RFQLineModel.line_number",
        lazy="selectin",
    )
    invitations: Mapped[list["RFQVendorInvitationModel"]] = relationship(
        "RFQVendorInvitationModel",
        back_populates="rfq",
        cascade="all, delete-orphan",
        order_by="RFQVendorInvitationModel.vendor_id",
        lazy="selectin",
    )

    def invitation_for(self, vendor_id: UUID) -> "RFQVendorInvitationModel | None":
        for inv in self.invitations:
            if inv.vendor_id == vendor_id:
                return inv
        return None

    def to_dto(self):
        from sourcing_modules.rfq.models import RFQ, RFQStatus

        return RFQ(
            id=self.id,
            company_id=self.company_id,
            rfq_number=self.rfq_number,
            status=RFQStatus(self.status),
            issue_date=self.issue_date,
            submission_deadline=self.submission_deadline,
            validity_days=self.validity_days,
            requisition_id=self.requisition_id,
            expected_delivery_date=self.expected_delivery_date,
            payment_terms=self.payment_terms,
            delivery_terms=self.delivery_terms,
            special_instructions=self.special_instructions,
            sent_at=self.sent_at,
            closed_at=self.closed_at,
            cancelled_at=self.cancelled_at,
            cancellation_reason=self.cancellation_reason,
            awarded_at=self.awarded_at,
            lines=tuple(line.to_dto() for line in self.lines),
            invitations=tuple(inv.to_dto() for inv in self.invitations),
        )

    def __repr__(self) -> str:
        return f"<RFQModel {self.rfq_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# RFQLineModel
# ---------------------------------------------------------------------------


class RFQLineModel(TrackedBase):
    """A line item on an RFQ, copied by value from the requisition."""

    __tablename__ = "rfq_lines"

    __table_args__ = (
        UniqueConstraint("rfq_id", "line_number", name="uq_rfq_line_number"),
    )

    rfq_id: Mapped[UUID] = mapped_column(
        ForeignKey("rfqs.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    material_id: Mapped[UUID | None]
    item_code: Mapped[str] = mapped_column(String(50), nullable=False)
    item_description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    required_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    specification: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    estimated_unit_price: Mapped[Decimal | None]
    source_requisition_line_id: Mapped[UUID | None]

    rfq: Mapped["RFQModel"] = relationship("RFQModel", back_populates="lines")

    def to_dto(self):
        from sourcing_modules.rfq.models import RFQLine

        return RFQLine(
            id=self.id,
            rfq_id=self.rfq_id,
            line_number=self.line_number,
            item_code=self.item_code,
            item_description=self.item_description,
            quantity=self.quantity,
            unit=self.unit,
            material_id=self.material_id,
            required_date=self.required_date,
            specification=self.specification,
            estimated_unit_price=self.estimated_unit_price,
            source_requisition_line_id=self.source_requisition_line_id,
        )


# ---------------------------------------------------------------------------
# RFQVendorInvitationModel
# ---------------------------------------------------------------------------


class RFQVendorInvitationModel(TrackedBase):
    """A vendor invited to quote, with dispatch and response flags."""

    __tablename__ = "rfq_vendor_invitations"

    __table_args__ = (
        UniqueConstraint("rfq_id", "vendor_id", name="uq_rfq_vendor"),
        Index("idx_invitation_vendor", "vendor_id"),
    )

    rfq_id: Mapped[UUID] = mapped_column(
        ForeignKey("rfqs.id", ondelete="CASCADE"), nullable=False,
    )
    vendor_id: Mapped[UUID] = mapped_column(nullable=False)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_sent_at: Mapped[datetime | None]
    response_received: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    response_received_at: Mapped[datetime | None]
    reminder_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reminder_at: Mapped[datetime | None]

    rfq: Mapped["RFQModel"] = relationship("RFQModel", back_populates="invitations")

    def to_dto(self):
        from sourcing_modules.rfq.models import VendorInvitation

        return VendorInvitation(
            id=self.id,
            rfq_id=self.rfq_id,
            vendor_id=self.vendor_id,
            email_sent=self.email_sent,
            email_sent_at=self.email_sent_at,
            response_received=self.response_received,
            response_received_at=self.response_received_at,
            reminder_count=self.reminder_count,
            last_reminder_at=self.last_reminder_at,
        )


# ---------------------------------------------------------------------------
# EmailDispatchLogModel
# ---------------------------------------------------------------------------


class EmailDispatchLogModel(TrackedBase):
    """Append-only record of an email sent or received about an RFQ."""

    __tablename__ = "rfq_email_logs"

    __table_args__ = (
        Index("idx_email_log_rfq", "rfq_id", "occurred_at"),
        Index("idx_email_log_message", "external_message_id"),
    )

    rfq_id: Mapped[UUID] = mapped_column(
        ForeignKey("rfqs.id", ondelete="CASCADE"), nullable=False,
    )
    vendor_id: Mapped[UUID | None]
    direction: Mapped[str] = mapped_column(String(20), nullable=False)
    email_type: Mapped[str] = mapped_column(String(50), nullable=False)
    external_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subject: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    address: Mapped[str | None] = mapped_column(String(320), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self):
        from sourcing_modules.rfq.models import (
            DispatchDirection,
            DispatchStatus,
            EmailDispatchEntry,
            EmailType,
        )

        return EmailDispatchEntry(
            id=self.id,
            rfq_id=self.rfq_id,
            vendor_id=self.vendor_id,
            direction=DispatchDirection(self.direction),
            email_type=EmailType(self.email_type),
            status=DispatchStatus(self.status),
            occurred_at=self.occurred_at,
            address=self.address,
            subject=self.subject,
            external_message_id=self.external_message_id,
            error=self.error,
        )
