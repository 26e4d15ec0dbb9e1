"""
SQLAlchemy ORM persistence models for the Quotation module.

Responsibility
--------------
Persist vendor replies (quotation responses), the quotations read from
them, quotation lines, and the buyer's per-item vendor selections.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``QuotationService``,
``ReconciliationService`` and ``ComparisonService``.

Invariants enforced
-------------------
* ``quotation_number`` is unique per company.
* Responses are matched on (rfq_id, vendor_id, external_message_id).  The
  index is not unique: rows written before ingestion checked for repeats
  are cleaned by the dedup sweep, which keeps the earliest.
* ``ComparisonDecisionModel`` rows are written once.  The dedup sweep is
  the only writer after that: it moves ``quotation_id`` off quotations it
  removes.
* ``response.quotation_id`` carries no foreign key; ``quotations.response_id``
  is the owning side.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sourcing_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# QuotationResponseModel
# ---------------------------------------------------------------------------


class QuotationResponseModel(TrackedBase):
    """A vendor's reply to an RFQ, stored as received."""

    __tablename__ = "quotation_responses"

    __table_args__ = (
        Index("idx_response_match_key", "rfq_id", "vendor_id", "external_message_id"),
        Index("idx_response_company_status", "company_id", "processing_status"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False)
    rfq_id: Mapped[UUID] = mapped_column(
        ForeignKey("rfqs.id", ondelete="CASCADE"), nullable=False,
    )
    vendor_id: Mapped[UUID] = mapped_column(nullable=False)
    external_message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    from_address: Mapped[str] = mapped_column(String(320), nullable=False)
    subject: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    received_at: Mapped[datetime] = mapped_column(nullable=False)
    processing_status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="pending_review",
    )
    extracted_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    quotation_id: Mapped[UUID | None]
    processed_at: Mapped[datetime | None]
    reviewed_by: Mapped[UUID | None]
    reviewed_at: Mapped[datetime | None]

    def to_dto(self):
        from sourcing_modules.quotation.models import (
            QuotationResponse,
            ResponseProcessingStatus,
        )

        return QuotationResponse(
            id=self.id,
            company_id=self.company_id,
            rfq_id=self.rfq_id,
            vendor_id=self.vendor_id,
            external_message_id=self.external_message_id,
            from_address=self.from_address,
            subject=self.subject,
            received_at=self.received_at,
            processing_status=ResponseProcessingStatus(self.processing_status),
            created_at=self.created_at,
            body=self.body,
            attachments=tuple(self.attachments or ()),
            extracted_data=self.extracted_data,
            quotation_id=self.quotation_id,
            processed_at=self.processed_at,
            reviewed_by=self.reviewed_by,
            reviewed_at=self.reviewed_at,
        )

    def __repr__(self) -> str:
        return f"<QuotationResponseModel {self.external_message_id} [{self.processing_status}]>"


# ---------------------------------------------------------------------------
# QuotationModel
# ---------------------------------------------------------------------------


class QuotationModel(TrackedBase):
    """A priced offer from one vendor against one RFQ."""

    __tablename__ = "quotations"

    __table_args__ = (
        UniqueConstraint("company_id", "quotation_number", name="uq_quotation_number"),
        Index("idx_quotation_rfq_vendor", "rfq_id", "vendor_id"),
        Index("idx_quotation_response", "response_id"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False)
    quotation_number: Mapped[str] = mapped_column(String(64), nullable=False)
    rfq_id: Mapped[UUID] = mapped_column(ForeignKey("rfqs.id"), nullable=False)
    vendor_id: Mapped[UUID] = mapped_column(nullable=False)
    response_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("quotation_responses.id"), nullable=True,
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="received")
    quotation_date: Mapped[date] = mapped_column(Date, nullable=False)
    received_at: Mapped[datetime] = mapped_column(nullable=False)
    valid_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_terms: Mapped[str | None] = mapped_column(String(500), nullable=True)
    delivery_terms: Mapped[str | None] = mapped_column(String(500), nullable=True)
    warranty_terms: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    lines: Mapped[list["QuotationLineModel"]] = relationship(
        "QuotationLineModel",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationLineModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        from sourcing_modules.quotation.models import Quotation, QuotationStatus

        return Quotation(
            id=self.id,
            company_id=self.company_id,
            quotation_number=self.quotation_number,
            rfq_id=self.rfq_id,
            vendor_id=self.vendor_id,
            status=QuotationStatus(self.status),
            quotation_date=self.quotation_date,
            received_at=self.received_at,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            response_id=self.response_id,
            valid_until=self.valid_until,
            payment_terms=self.payment_terms,
            delivery_terms=self.delivery_terms,
            warranty_terms=self.warranty_terms,
            notes=self.notes,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<QuotationModel {self.quotation_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# QuotationLineModel
# ---------------------------------------------------------------------------


class QuotationLineModel(TrackedBase):
    """A priced line on a quotation."""

    __tablename__ = "quotation_lines"

    __table_args__ = (
        UniqueConstraint("quotation_id", "line_number", name="uq_quotation_line_number"),
    )

    quotation_id: Mapped[UUID] = mapped_column(
        ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    item_description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    delivery_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    warranty: Mapped[str | None] = mapped_column(String(500), nullable=True)

    quotation: Mapped["QuotationModel"] = relationship("QuotationModel", back_populates="lines")

    def to_dto(self):
        from sourcing_modules.quotation.models import QuotationLine

        return QuotationLine(
            id=self.id,
            quotation_id=self.quotation_id,
            line_number=self.line_number,
            item_code=self.item_code,
            item_description=self.item_description,
            quantity=self.quantity,
            unit=self.unit,
            unit_price=self.unit_price,
            total_amount=self.total_amount,
            delivery_days=self.delivery_days,
            warranty=self.warranty,
        )


# ---------------------------------------------------------------------------
# ComparisonDecisionModel
# ---------------------------------------------------------------------------


class ComparisonDecisionModel(TrackedBase):
    """The vendor a buyer selected for one RFQ item.  Insert-only."""

    __tablename__ = "quotation_comparison_decisions"

    __table_args__ = (
        Index("idx_comparison_decision_rfq", "rfq_id", "item_code"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False)
    rfq_id: Mapped[UUID] = mapped_column(ForeignKey("rfqs.id"), nullable=False)
    item_code: Mapped[str] = mapped_column(String(50), nullable=False)
    selected_vendor_id: Mapped[UUID] = mapped_column(nullable=False)
    quotation_id: Mapped[UUID | None]
    selection_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    decided_by: Mapped[UUID] = mapped_column(nullable=False)
    decided_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self):
        from sourcing_modules.quotation.models import ComparisonDecision

        return ComparisonDecision(
            id=self.id,
            rfq_id=self.rfq_id,
            item_code=self.item_code,
            selected_vendor_id=self.selected_vendor_id,
            decided_by=self.decided_by,
            decided_at=self.decided_at,
            quotation_id=self.quotation_id,
            selection_reason=self.selection_reason,
        )
