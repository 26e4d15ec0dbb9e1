"""
Quotation Module Service (``sourcing_modules.quotation.service``).

Responsibility
--------------
Manual quotation entry and the quotation status lifecycle.  Quotations
read automatically from vendor email are created by
``ReconciliationService``; both paths share
``sourcing_modules.quotation.builder``.

Invariants enforced
-------------------
* A quotation is recorded only for a vendor invited to the RFQ, while the
  RFQ still accepts replies.
* Numbers are ``QT-YYYY-NNNN`` per company, issued inside the same
  transaction as the quotation row.
* Status changes follow ``QUOTATION_WORKFLOW``.

Failure modes
-------------
* ``NotFoundError`` for an unknown RFQ, invitation, response or quotation.
* ``StateTransitionError`` for an RFQ that no longer accepts replies, or an
  illegal status change.
* ``ValidationError`` for empty or malformed lines, or a response that
  belongs to another RFQ or vendor.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sourcing_kernel.db.unit_of_work import UnitOfWork
from sourcing_kernel.domain.access_policy import AccessPolicy, Actor
from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.exceptions import NotFoundError, StateTransitionError, ValidationError
from sourcing_kernel.logging_config import LogContext, get_logger
from sourcing_kernel.services.sequence_service import DocumentNumberService
from sourcing_modules.quotation.builder import build_quotation
from sourcing_modules.quotation.config import QuotationConfig
from sourcing_modules.quotation.models import Quotation, QuotationLineInput, QuotationStatus
from sourcing_modules.quotation.orm import QuotationModel, QuotationResponseModel
from sourcing_modules.quotation.workflows import QUOTATION_WORKFLOW
from sourcing_modules.rfq.orm import RFQModel, RFQVendorInvitationModel
from sourcing_modules.rfq.workflows import RESPONSE_ACCEPTING_STATES

logger = get_logger("modules.quotation.service")


def load_rfq(session: Session, company_id: UUID, rfq_id: UUID, for_update: bool = False) -> RFQModel:
    stmt = select(RFQModel).where(RFQModel.id == rfq_id).where(RFQModel.company_id == company_id)
    if for_update:
        stmt = stmt.with_for_update()
    rfq = session.execute(stmt).scalar_one_or_none()
    if rfq is None:
        raise NotFoundError("rfq", str(rfq_id))
    return rfq


def lock_invitation(session: Session, rfq_id: UUID, vendor_id: UUID) -> RFQVendorInvitationModel:
    """Row-lock the (rfq, vendor) invitation, or raise NotFoundError."""
    inv = session.execute(
        select(RFQVendorInvitationModel)
        .where(RFQVendorInvitationModel.rfq_id == rfq_id)
        .where(RFQVendorInvitationModel.vendor_id == vendor_id)
        .with_for_update()
    ).scalar_one_or_none()
    if inv is None:
        raise NotFoundError("rfq_vendor_invitation", f"{rfq_id}/{vendor_id}")
    return inv


def require_accepting_replies(rfq: RFQModel, action: str) -> None:
    if rfq.status not in RESPONSE_ACCEPTING_STATES:
        raise StateTransitionError(
            entity_type="rfq",
            entity_id=str(rfq.id),
            current_state=rfq.status,
            action=action,
            reason="RFQ no longer accepts quotations",
        )


class QuotationService:
    """Manual quotation entry and status changes."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: QuotationConfig | None = None,
        access_policy: AccessPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or QuotationConfig.with_defaults()
        self._policy = access_policy or AccessPolicy()
        self._numbers = DocumentNumberService(session)

    def record_quotation(
        self,
        actor: Actor,
        rfq_id: UUID,
        vendor_id: UUID,
        lines: Sequence[QuotationLineInput],
        response_id: UUID | None = None,
        quotation_date: date | None = None,
        valid_until: date | None = None,
        tax_amount: Decimal = Decimal("0"),
        payment_terms: str | None = None,
        delivery_terms: str | None = None,
        warranty_terms: str | None = None,
        notes: str | None = None,
    ) -> Quotation:
        """
        Enter a quotation by hand against an (rfq, vendor) pair.

        When ``response_id`` names a stored reply, the reply must belong to
        the same RFQ and vendor, and it is linked to the new quotation.
        The invitation is marked as answered.
        """
        self._policy.require(actor, QUOTATION_WORKFLOW.name, "record")
        now = self._clock.now()

        with LogContext.bind(actor_id=actor.actor_id, entity_id=rfq_id):
            with UnitOfWork(self._session, "record_quotation", rfq_id=str(rfq_id)):
                rfq = load_rfq(self._session, actor.company_id, rfq_id)
                inv = lock_invitation(self._session, rfq.id, vendor_id)
                require_accepting_replies(rfq, "record_quotation")

                response = None
                if response_id is not None:
                    response = self._session.get(QuotationResponseModel, response_id)
                    if response is None or response.company_id != actor.company_id:
                        raise NotFoundError("quotation_response", str(response_id))
                    if response.rfq_id != rfq.id or response.vendor_id != vendor_id:
                        raise ValidationError(
                            "response_id", "response belongs to another RFQ or vendor",
                        )

                quotation = build_quotation(
                    self._session,
                    self._numbers,
                    self._config,
                    company_id=actor.company_id,
                    rfq_id=rfq.id,
                    vendor_id=vendor_id,
                    actor_id=actor.actor_id,
                    now=now,
                    lines=lines,
                    received_at=response.received_at if response else now,
                    response_id=response_id,
                    quotation_date=quotation_date,
                    valid_until=valid_until,
                    validity_days=rfq.validity_days,
                    tax_amount=tax_amount,
                    payment_terms=payment_terms,
                    delivery_terms=delivery_terms,
                    warranty_terms=warranty_terms,
                    notes=notes,
                )
                if response is not None:
                    response.quotation_id = quotation.id
                    response.updated_by_id = actor.actor_id
                if not inv.response_received:
                    inv.response_received = True
                    inv.response_received_at = now
                    inv.updated_by_id = actor.actor_id
                dto = quotation.to_dto()

        logger.info(
            "quotation_recorded",
            extra={
                "quotation_id": str(dto.id),
                "quotation_number": dto.quotation_number,
                "rfq_id": str(rfq_id),
                "vendor_id": str(vendor_id),
                "total_amount": dto.total_amount,
            },
        )
        return dto

    def change_quotation_status(self, actor: Actor, quotation_id: UUID, action: str) -> Quotation:
        """Apply ``review``, ``accept``, ``reject`` or ``withdraw``."""
        action = (action or "").strip().lower()
        self._policy.require(actor, QUOTATION_WORKFLOW.name, action)

        with LogContext.bind(actor_id=actor.actor_id, entity_id=quotation_id):
            with UnitOfWork(self._session, "change_quotation_status", action=action):
                quotation = self._load(actor, quotation_id, for_update=True)
                previous = quotation.status
                transition = QUOTATION_WORKFLOW.require_transition(
                    "quotation", quotation.id, quotation.status, action,
                )
                quotation.status = transition.to_state
                quotation.updated_by_id = actor.actor_id
                dto = quotation.to_dto()

        logger.info(
            "quotation_status_changed",
            extra={
                "quotation_id": str(quotation_id),
                "from_status": previous,
                "to_status": dto.status.value,
            },
        )
        return dto

    def get_quotation(self, actor: Actor, quotation_id: UUID) -> Quotation:
        return self._load(actor, quotation_id).to_dto()

    def list_quotations(
        self,
        actor: Actor,
        rfq_id: UUID | None = None,
        status: str | QuotationStatus | None = None,
    ) -> list[Quotation]:
        stmt = select(QuotationModel).where(QuotationModel.company_id == actor.company_id)
        if rfq_id is not None:
            stmt = stmt.where(QuotationModel.rfq_id == rfq_id)
        if status is not None:
            stmt = stmt.where(
                QuotationModel.status == QuotationStatus.parse(status, "status").value
            )
        rows = self._session.execute(stmt.order_by(QuotationModel.quotation_number)).scalars()
        return [row.to_dto() for row in rows]

    def _load(self, actor: Actor, quotation_id: UUID, for_update: bool = False) -> QuotationModel:
        stmt = (
            select(QuotationModel)
            .where(QuotationModel.id == quotation_id)
            .where(QuotationModel.company_id == actor.company_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        quotation = self._session.execute(stmt).scalar_one_or_none()
        if quotation is None:
            raise NotFoundError("quotation", str(quotation_id))
        return quotation
