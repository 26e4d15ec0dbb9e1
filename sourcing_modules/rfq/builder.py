"""
RFQ record construction shared by ``RFQService.create_rfq`` and
``RequisitionService.convert_to_rfq``.

Runs inside the caller's UnitOfWork: it numbers the RFQ, adds the RFQ,
its lines and one invitation per distinct vendor, and flushes.  Also home
of ``append_email_log``, the one writer of the email dispatch log.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from sourcing_kernel.exceptions import ValidationError
from sourcing_kernel.services.sequence_service import DocumentNumberService, bucket_key_for
from sourcing_modules.rfq.config import RFQConfig
from sourcing_modules.rfq.models import (
    DispatchDirection,
    DispatchStatus,
    EmailType,
    RFQLineInput,
    RFQStatus,
    RFQTerms,
)
from sourcing_modules.rfq.orm import (
    EmailDispatchLogModel,
    RFQLineModel,
    RFQModel,
    RFQVendorInvitationModel,
)


def validate_items(items: Sequence[Any], field: str = "items") -> None:
    """Every line needs an item code, a description, a unit and a positive quantity."""
    if not items:
        raise ValidationError(field, "at least one line item is required")
    for index, item in enumerate(items, start=1):
        if not (item.item_code or "").strip():
            raise ValidationError(f"{field}[{index}].item_code", "item code is required")
        if not (item.item_description or "").strip():
            raise ValidationError(
                f"{field}[{index}].item_description", "description is required",
            )
        if not (item.unit or "").strip():
            raise ValidationError(f"{field}[{index}].unit", "unit is required")
        if Decimal(item.quantity) <= 0:
            raise ValidationError(
                f"{field}[{index}].quantity", f"quantity must be positive, got {item.quantity}",
            )


def distinct_vendors(vendor_ids: Sequence[UUID]) -> list[UUID]:
    """Drop repeats, keep first-seen order."""
    seen: set[UUID] = set()
    ordered: list[UUID] = []
    for vendor_id in vendor_ids:
        if vendor_id not in seen:
            seen.add(vendor_id)
            ordered.append(vendor_id)
    return ordered


def build_rfq(
    session: Session,
    numbers: DocumentNumberService,
    config: RFQConfig,
    *,
    company_id: UUID,
    actor_id: UUID,
    now: datetime,
    lines: Sequence[RFQLineInput],
    vendor_ids: Sequence[UUID],
    submission_deadline: datetime,
    terms: RFQTerms,
    status: RFQStatus,
    requisition_id: UUID | None = None,
) -> RFQModel:
    validate_items(lines)
    vendors = distinct_vendors(vendor_ids)
    if not vendors:
        raise ValidationError("vendor_ids", "at least one vendor is required")
    if submission_deadline < now:
        raise ValidationError(
            "submission_deadline",
            f"deadline {submission_deadline.isoformat()} is in the past",
        )

    series = config.number_series
    rfq_number = numbers.next_number(series, company_id, bucket_key_for(series, now.date()))

    rfq = RFQModel(
        company_id=company_id,
        rfq_number=rfq_number,
        requisition_id=requisition_id,
        status=status.value,
        issue_date=now.date(),
        submission_deadline=submission_deadline,
        expected_delivery_date=terms.expected_delivery_date,
        payment_terms=terms.payment_terms,
        delivery_terms=terms.delivery_terms,
        special_instructions=terms.special_instructions,
        validity_days=terms.validity_days or config.default_validity_days,
        created_at=now,
        created_by_id=actor_id,
    )
    rfq.lines = [
        RFQLineModel(
            line_number=number,
            material_id=line.material_id,
            item_code=line.item_code.strip(),
            item_description=line.item_description,
            quantity=Decimal(line.quantity),
            unit=line.unit,
            required_date=line.required_date,
            specification=line.specification,
            estimated_unit_price=line.estimated_unit_price,
            source_requisition_line_id=line.source_requisition_line_id,
            created_at=now,
            created_by_id=actor_id,
        )
        for number, line in enumerate(lines, start=1)
    ]
    rfq.invitations = [
        RFQVendorInvitationModel(
            vendor_id=vendor_id,
            email_sent=False,
            response_received=False,
            reminder_count=0,
            created_at=now,
            created_by_id=actor_id,
        )
        for vendor_id in vendors
    ]
    session.add(rfq)
    numbers.flush_numbered("rfq", rfq_number)
    return rfq


def append_email_log(
    session: Session,
    *,
    rfq_id: UUID,
    vendor_id: UUID | None,
    direction: DispatchDirection,
    email_type: EmailType,
    status: DispatchStatus,
    occurred_at: datetime,
    actor_id: UUID,
    address: str | None = None,
    subject: str | None = None,
    external_message_id: str | None = None,
    error: str | None = None,
) -> EmailDispatchLogModel:
    """Append one row to the email log.  Rows are never updated."""
    entry = EmailDispatchLogModel(
        rfq_id=rfq_id,
        vendor_id=vendor_id,
        direction=direction.value,
        email_type=email_type.value,
        status=status.value,
        occurred_at=occurred_at,
        address=address,
        subject=subject,
        external_message_id=external_message_id,
        error=error,
        created_at=occurred_at,
        created_by_id=actor_id,
    )
    session.add(entry)
    return entry
