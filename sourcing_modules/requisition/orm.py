"""
SQLAlchemy ORM persistence models for the Requisition module.

Responsibility
--------------
Provide database-backed persistence for purchase requisitions and their
lines.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``RequisitionService`` for
persistence.  Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* ``pr_number`` is unique per ``number_scope_id`` (the factory when the
  requisition names one, else the company).
* All quantities and prices use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String(50) holding the enum ``.value``.
* Vendor, material, division, department and factory ids reference
  external master data and carry no foreign key.
* ``RequisitionLineModel`` belongs to exactly one requisition and is
  deleted with it.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sourcing_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# PurchaseRequisitionModel
# ---------------------------------------------------------------------------


class PurchaseRequisitionModel(TrackedBase):
    """
    A purchase requisition (internal request to procure goods).

    Maps to the ``Requisition`` DTO in ``sourcing_modules.requisition.models``.
    """

    __tablename__ = "purchase_requisitions"

    __table_args__ = (
        UniqueConstraint("number_scope_id", "pr_number", name="uq_requisition_number"),
        Index("idx_requisition_company_status", "company_id", "status"),
        Index("idx_requisition_required_by", "required_by"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False)
    division_id: Mapped[UUID] = mapped_column(nullable=False)
    department_id: Mapped[UUID | None]
    factory_id: Mapped[UUID | None]
    number_scope_id: Mapped[UUID] = mapped_column(nullable=False)
    pr_number: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default="normal")
    request_date: Mapped[date] = mapped_column(Date, nullable=False)
    required_by: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    requested_by: Mapped[UUID] = mapped_column(nullable=False)
    submitted_at: Mapped[datetime | None]
    approved_by: Mapped[UUID | None]
    approved_at: Mapped[datetime | None]
    approval_comments: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    rejected_by: Mapped[UUID | None]
    rejected_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    # rfqs.requisition_id points back here; no FK in this direction
    converted_rfq_id: Mapped[UUID | None]

    lines: Mapped[list["RequisitionLineModel"]] = relationship(
        "RequisitionLineModel",
        back_populates="requisition",
        cascade="all, delete-orphan",
        order_by="RequisitionLineModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        from sourcing_modules.requisition.models import (
            Requisition,
            RequisitionPriority,
            RequisitionStatus,
        )

        return Requisition(
            id=self.id,
            company_id=self.company_id,
            pr_number=self.pr_number,
            division_id=self.division_id,
            status=RequisitionStatus(self.status),
            priority=RequisitionPriority(self.priority),
            request_date=self.request_date,
            required_by=self.required_by,
            requested_by=self.requested_by,
            department_id=self.department_id,
            factory_id=self.factory_id,
            notes=self.notes,
            submitted_at=self.submitted_at,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            approval_comments=self.approval_comments,
            rejected_by=self.rejected_by,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
            converted_rfq_id=self.converted_rfq_id,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<PurchaseRequisitionModel {self.pr_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# RequisitionLineModel
# ---------------------------------------------------------------------------


class RequisitionLineModel(TrackedBase):
    """A line item on a purchase requisition."""

    __tablename__ = "purchase_requisition_lines"

    __table_args__ = (
        UniqueConstraint("requisition_id", "line_number", name="uq_requisition_line_number"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_requisitions.id", ondelete="CASCADE"), nullable=False,
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

    requisition: Mapped["PurchaseRequisitionModel"] = relationship(
        "PurchaseRequisitionModel",
        back_populates="lines",
    )

    def to_dto(self):
        from sourcing_modules.requisition.models import RequisitionLine

        return RequisitionLine(
            id=self.id,
            requisition_id=self.requisition_id,
            line_number=self.line_number,
            item_code=self.item_code,
            item_description=self.item_description,
            quantity=self.quantity,
            unit=self.unit,
            material_id=self.material_id,
            required_date=self.required_date,
            specification=self.specification,
            estimated_unit_price=self.estimated_unit_price,
        )

    def __repr__(self) -> str:
        return f"<RequisitionLineModel #{self.line_number} {self.item_code}>"
