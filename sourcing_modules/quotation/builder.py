"""
Quotation record construction shared by ``QuotationService.record_quotation``
and ``ReconciliationService.ingest_response``.

Runs inside the caller's UnitOfWork: numbers the quotation, adds it with
its lines, and flushes.
"""

from collections.abc import Sequence
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from sourcing_engines.extraction import ExtractedQuotation
from sourcing_kernel.db.types import round_money
from sourcing_kernel.exceptions import ValidationError
from sourcing_kernel.services.sequence_service import DocumentNumberService, bucket_key_for
from sourcing_modules.quotation.config import QuotationConfig
from sourcing_modules.quotation.models import QuotationLineInput, QuotationStatus
from sourcing_modules.quotation.orm import QuotationLineModel, QuotationModel


def validate_quotation_lines(lines: Sequence[QuotationLineInput], field: str = "lines") -> None:
    if not lines:
        raise ValidationError(field, "at least one priced line is required")
    for index, line in enumerate(lines, start=1):
        if not (line.item_description or "").strip():
            raise ValidationError(
                f"{field}[{index}].item_description", "description is required",
            )
        if not (line.unit or "").strip():
            raise ValidationError(f"{field}[{index}].unit", "unit is required")
        if Decimal(line.quantity) <= 0:
            raise ValidationError(
                f"{field}[{index}].quantity", f"quantity must be positive, got {line.quantity}",
            )
        if Decimal(line.unit_price) < 0:
            raise ValidationError(
                f"{field}[{index}].unit_price", f"unit price cannot be negative, got {line.unit_price}",
            )


def lines_from_extraction(extracted: ExtractedQuotation) -> list[QuotationLineInput]:
    return [
        QuotationLineInput(
            item_code=line.item_code,
            item_description=line.item_description,
            quantity=line.quantity,
            unit=line.unit,
            unit_price=line.unit_price,
            total_amount=line.total_amount,
            delivery_days=line.delivery_days,
            warranty=line.warranty,
        )
        for line in extracted.lines
    ]


def build_quotation(
    session: Session,
    numbers: DocumentNumberService,
    config: QuotationConfig,
    *,
    company_id: UUID,
    rfq_id: UUID,
    vendor_id: UUID,
    actor_id: UUID,
    now: datetime,
    lines: Sequence[QuotationLineInput],
    received_at: datetime | None = None,
    response_id: UUID | None = None,
    quotation_date: date | None = None,
    valid_until: date | None = None,
    validity_days: int | None = None,
    tax_amount: Decimal = Decimal("0"),
    payment_terms: str | None = None,
    delivery_terms: str | None = None,
    warranty_terms: str | None = None,
    notes: str | None = None,
) -> QuotationModel:
    validate_quotation_lines(lines)
    if tax_amount < 0:
        raise ValidationError("tax_amount", f"tax cannot be negative, got {tax_amount}")
    quoted_on = quotation_date or now.date()
    if valid_until is None:
        valid_until = quoted_on + timedelta(
            days=validity_days or config.default_validity_days,
        )
    if valid_until < quoted_on:
        raise ValidationError("valid_until", "validity ends before the quotation date")

    line_models = []
    for number, line in enumerate(lines, start=1):
        quantity = Decimal(line.quantity)
        total = line.total_amount
        if total is None:
            total = round_money(Decimal(line.unit_price) * quantity)
        line_models.append(
            QuotationLineModel(
                line_number=number,
                item_code=line.item_code.strip() if line.item_code else None,
                item_description=line.item_description,
                quantity=quantity,
                unit=line.unit,
                unit_price=Decimal(line.unit_price),
                total_amount=total,
                delivery_days=line.delivery_days,
                warranty=line.warranty,
                created_at=now,
                created_by_id=actor_id,
            )
        )
    subtotal = sum((m.total_amount for m in line_models), Decimal("0"))

    series = config.number_series
    quotation_number = numbers.next_number(series, company_id, bucket_key_for(series, now.date()))
    quotation = QuotationModel(
        company_id=company_id,
        quotation_number=quotation_number,
        rfq_id=rfq_id,
        vendor_id=vendor_id,
        response_id=response_id,
        status=QuotationStatus.RECEIVED.value,
        quotation_date=quoted_on,
        received_at=received_at or now,
        valid_until=valid_until,
        subtotal=subtotal,
        tax_amount=tax_amount,
        total_amount=subtotal + tax_amount,
        payment_terms=payment_terms,
        delivery_terms=delivery_terms,
        warranty_terms=warranty_terms,
        notes=notes,
        created_at=now,
        created_by_id=actor_id,
    )
    quotation.lines = line_models
    session.add(quotation)
    numbers.flush_numbered("quotation", quotation_number)
    return quotation
