"""
Quotation Comparison Service (``sourcing_modules.quotation.comparison``).

Loads an RFQ and its quotations, hands them to the pure
``ComparisonEngine``, and records the buyer's per-item vendor choices.
Comparisons are computed on every read and never stored.  Recording a
selection changes neither the RFQ nor any quotation.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sourcing_engines.comparison import (
    ELIGIBLE_STATUSES,
    ComparisonEngine,
    QuotedLine,
    RFQComparison,
    RFQItem,
    VendorQuotation,
)
from sourcing_kernel.db.unit_of_work import UnitOfWork
from sourcing_kernel.domain.access_policy import AccessPolicy, Actor
from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.exceptions import ValidationError
from sourcing_kernel.logging_config import LogContext, get_logger
from sourcing_modules.quotation.models import ComparisonDecision, VendorSelection
from sourcing_modules.quotation.orm import ComparisonDecisionModel, QuotationModel
from sourcing_modules.quotation.service import load_rfq
from sourcing_modules.rfq.gateways import VendorDirectory

logger = get_logger("modules.quotation.comparison")

_WORKFLOW = "rfq_comparison"


class ComparisonService:
    """Vendor comparison for an RFQ and the selections made from it."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        vendor_directory: VendorDirectory | None = None,
        access_policy: AccessPolicy | None = None,
        engine: ComparisonEngine | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._vendors = vendor_directory
        self._policy = access_policy or AccessPolicy()
        self._engine = engine or ComparisonEngine()

    def get_comparison(self, actor: Actor, rfq_id: UUID) -> RFQComparison:
        """Rank the RFQ's eligible quotations per item and overall."""
        rfq = load_rfq(self._session, actor.company_id, rfq_id)
        items = [
            RFQItem(
                item_code=line.item_code,
                item_description=line.item_description,
                quantity=line.quantity,
                unit=line.unit,
            )
            for line in rfq.lines
        ]
        quotations = self._session.execute(
            select(QuotationModel)
            .where(QuotationModel.rfq_id == rfq.id)
            .where(QuotationModel.company_id == actor.company_id)
            .order_by(QuotationModel.quotation_number)
        ).scalars().all()

        comparison = self._engine.compare(
            rfq_id=rfq.id,
            rfq_number=rfq.rfq_number,
            items=items,
            quotations=[self._project(actor.company_id, q) for q in quotations],
        )
        logger.info(
            "rfq_comparison_computed",
            extra={
                "rfq_id": str(rfq_id),
                "quotation_count": len(quotations),
                "vendor_count": comparison.vendor_count,
                "excluded_count": len(comparison.excluded_quotation_ids),
            },
        )
        return comparison

    def _project(self, company_id: UUID, quotation: QuotationModel) -> VendorQuotation:
        contact = (
            self._vendors.get_vendor(company_id, quotation.vendor_id)
            if self._vendors is not None
            else None
        )
        return VendorQuotation(
            quotation_id=quotation.id,
            quotation_number=quotation.quotation_number,
            vendor_id=quotation.vendor_id,
            vendor_name=contact.name if contact else str(quotation.vendor_id),
            vendor_rating=contact.rating if contact else None,
            status=quotation.status,
            total_amount=quotation.total_amount,
            quotation_date=quotation.quotation_date,
            valid_until=quotation.valid_until,
            received_at=quotation.received_at,
            lines=tuple(
                QuotedLine(
                    item_code=line.item_code,
                    unit_price=line.unit_price,
                    total_amount=line.total_amount,
                    delivery_days=line.delivery_days,
                    warranty=line.warranty,
                )
                for line in quotation.lines
            ),
            payment_terms=quotation.payment_terms,
            delivery_terms=quotation.delivery_terms,
        )

    def record_vendor_selections(
        self,
        actor: Actor,
        rfq_id: UUID,
        selections: Sequence[VendorSelection],
    ) -> tuple[ComparisonDecision, ...]:
        """
        Record which vendor was chosen for each item.

        Every selection must name an item on the RFQ and an invited vendor.
        The vendor's latest eligible quotation, if any, is linked.
        """
        self._policy.require(actor, _WORKFLOW, "select")
        if not selections:
            raise ValidationError("selections", "at least one selection is required")
        now = self._clock.now()

        with LogContext.bind(actor_id=actor.actor_id, entity_id=rfq_id):
            with UnitOfWork(self._session, "record_vendor_selections", rfq_id=str(rfq_id)):
                rfq = load_rfq(self._session, actor.company_id, rfq_id)
                item_codes = {line.item_code for line in rfq.lines}
                for index, selection in enumerate(selections, start=1):
                    if selection.item_code not in item_codes:
                        raise ValidationError(
                            f"selections[{index}].item_code",
                            f"{selection.item_code} is not on {rfq.rfq_number}",
                        )
                    if rfq.invitation_for(selection.vendor_id) is None:
                        raise ValidationError(
                            f"selections[{index}].vendor_id",
                            f"vendor {selection.vendor_id} is not invited to {rfq.rfq_number}",
                        )

                decisions = []
                for selection in selections:
                    decision = ComparisonDecisionModel(
                        company_id=actor.company_id,
                        rfq_id=rfq.id,
                        item_code=selection.item_code,
                        selected_vendor_id=selection.vendor_id,
                        quotation_id=self._latest_quotation_id(rfq.id, selection.vendor_id),
                        selection_reason=selection.reason,
                        decided_by=actor.actor_id,
                        decided_at=now,
                        created_at=now,
                        created_by_id=actor.actor_id,
                    )
                    self._session.add(decision)
                    decisions.append(decision)
                self._session.flush()
                result = tuple(d.to_dto() for d in decisions)

        logger.info(
            "vendor_selections_recorded",
            extra={"rfq_id": str(rfq_id), "selection_count": len(result)},
        )
        return result

    def list_vendor_selections(self, actor: Actor, rfq_id: UUID) -> list[ComparisonDecision]:
        load_rfq(self._session, actor.company_id, rfq_id)
        rows = self._session.execute(
            select(ComparisonDecisionModel)
            .where(ComparisonDecisionModel.rfq_id == rfq_id)
            .order_by(ComparisonDecisionModel.decided_at, ComparisonDecisionModel.item_code)
        ).scalars()
        return [row.to_dto() for row in rows]

    def _latest_quotation_id(self, rfq_id: UUID, vendor_id: UUID) -> UUID | None:
        return self._session.execute(
            select(QuotationModel.id)
            .where(QuotationModel.rfq_id == rfq_id)
            .where(QuotationModel.vendor_id == vendor_id)
            .where(QuotationModel.status.in_(ELIGIBLE_STATUSES))
            .order_by(QuotationModel.received_at.desc(), QuotationModel.quotation_number.desc())
            .limit(1)
        ).scalar_one_or_none()
