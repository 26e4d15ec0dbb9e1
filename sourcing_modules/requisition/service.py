"""
Requisition Module Service (``sourcing_modules.requisition.service``).

Responsibility
--------------
Owns the purchase requisition lifecycle: creation with a sequential
``PR-YYYYMM-NNNN`` number, editing while in draft, submission, the
approver's decision, and conversion of an approved requisition into an
RFQ addressed to the chosen vendors.

Architecture position
---------------------
**Modules layer** -- thin glue over the kernel.  Numbering comes from
``DocumentNumberService``; RFQ rows are built by
``sourcing_modules.rfq.builder`` inside this service's transaction.

Invariants enforced
-------------------
* Each public method owns its transaction (``UnitOfWork``): conversion
  writes the RFQ, its lines, its invitations and the requisition status
  change together or not at all.
* Every transition is checked against ``REQUISITION_WORKFLOW`` before any
  write.  Only ``draft`` requisitions may be edited or deleted.
* A requisition leaves ``draft`` only with at least one line and a
  required-by date that is not in the past.
* Rejection reasons are stored verbatim.

Failure modes
-------------
* ``ValidationError`` for bad lines, past dates, missing reasons or vendors.
* ``StateTransitionError`` for illegal actions.
* ``NotFoundError`` for requisitions outside the actor's company.
* ``ConflictError`` when a concurrent writer took the same number; retry
  the whole call.

Usage::

    service = RequisitionService(session, clock=clock)
    pr = service.create_requisition(actor, division_id, date(2025, 2, 1), items)
    service.submit_requisition(actor, pr.id)
    service.approve_requisition(approver, pr.id)
    rfq = service.convert_to_rfq(buyer, pr.id, vendor_ids, deadline)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sourcing_kernel.db.unit_of_work import UnitOfWork
from sourcing_kernel.domain.access_policy import AccessPolicy, Actor
from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.exceptions import NotFoundError, StateTransitionError, ValidationError
from sourcing_kernel.logging_config import LogContext, get_logger
from sourcing_kernel.services.sequence_service import DocumentNumberService, bucket_key_for
from sourcing_modules.requisition.config import RequisitionConfig
from sourcing_modules.requisition.models import (
    Requisition,
    RequisitionDecision,
    RequisitionLineInput,
    RequisitionPriority,
    RequisitionStatus,
)
from sourcing_modules.requisition.orm import PurchaseRequisitionModel, RequisitionLineModel
from sourcing_modules.requisition.selectors import RequisitionSelector
from sourcing_modules.requisition.workflows import (
    EDITABLE_STATES,
    REJECTION_REASON_GIVEN,
    REQUISITION_WORKFLOW,
)
from sourcing_modules.rfq.builder import build_rfq, validate_items
from sourcing_modules.rfq.config import RFQConfig
from sourcing_modules.rfq.gateways import VendorDirectory
from sourcing_modules.rfq.models import RFQ, RFQLineInput, RFQStatus, RFQTerms

logger = get_logger("modules.requisition.service")

_ENTITY = "purchase_requisition"


class RequisitionService:
    """
    Purchase requisition lifecycle operations.

    Contract
    --------
    * Every mutating method returns the updated ``Requisition`` DTO, except
      ``convert_to_rfq`` (returns the new ``RFQ``) and ``delete_requisition``.

    Non-goals
    ---------
    * Does NOT check budgets or approval hierarchies.
    * Does NOT email vendors; ``RFQService.send_rfq`` does.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: RequisitionConfig | None = None,
        rfq_config: RFQConfig | None = None,
        vendor_directory: VendorDirectory | None = None,
        access_policy: AccessPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or RequisitionConfig.with_defaults()
        self._rfq_config = rfq_config or RFQConfig.with_defaults()
        self._vendors = vendor_directory
        self._policy = access_policy or AccessPolicy()
        self._numbers = DocumentNumberService(session)
        self._selector = RequisitionSelector(session)

    # =========================================================================
    # Draft editing
    # =========================================================================

    def create_requisition(
        self,
        actor: Actor,
        division_id: UUID,
        required_by: date,
        items: Sequence[RequisitionLineInput],
        priority: str | RequisitionPriority | None = None,
        department_id: UUID | None = None,
        factory_id: UUID | None = None,
        notes: str | None = None,
    ) -> Requisition:
        """Create a ``draft`` requisition numbered ``PR-YYYYMM-NNNN``."""
        self._policy.require(actor, REQUISITION_WORKFLOW.name, "create")
        today = self._clock.today()
        self._validate_lines(items)
        self._validate_required_by(required_by, today)
        parsed_priority = RequisitionPriority.parse(
            priority or self._config.default_priority, "priority",
        )
        now = self._clock.now()
        scope_id = factory_id or actor.company_id

        logger.info(
            "requisition_create_started",
            extra={"item_count": len(items), "scope_id": str(scope_id)},
        )
        with LogContext.bind(actor_id=actor.actor_id, company_id=actor.company_id):
            with UnitOfWork(self._session, "create_requisition"):
                series = self._config.number_series
                pr_number = self._numbers.next_number(
                    series, scope_id, bucket_key_for(series, today),
                )
                pr = PurchaseRequisitionModel(
                    company_id=actor.company_id,
                    division_id=division_id,
                    department_id=department_id,
                    factory_id=factory_id,
                    number_scope_id=scope_id,
                    pr_number=pr_number,
                    status=RequisitionStatus.DRAFT.value,
                    priority=parsed_priority.value,
                    request_date=today,
                    required_by=required_by,
                    notes=notes,
                    requested_by=actor.actor_id,
                    created_at=now,
                    created_by_id=actor.actor_id,
                )
                pr.lines = self._build_lines(items, actor.actor_id, now)
                self._session.add(pr)
                self._numbers.flush_numbered(_ENTITY, pr_number)
                dto = pr.to_dto()

        logger.info(
            "requisition_created",
            extra={"requisition_id": str(dto.id), "pr_number": dto.pr_number},
        )
        return dto

    def update_requisition(
        self,
        actor: Actor,
        requisition_id: UUID,
        items: Sequence[RequisitionLineInput] | None = None,
        required_by: date | None = None,
        priority: str | RequisitionPriority | None = None,
        notes: str | None = None,
    ) -> Requisition:
        """Edit a draft.  When ``items`` is given the lines are replaced as a set."""
        self._policy.require(actor, REQUISITION_WORKFLOW.name, "update")
        today = self._clock.today()
        if items is not None:
            self._validate_lines(items)
        if required_by is not None:
            self._validate_required_by(required_by, today)
        parsed_priority = (
            RequisitionPriority.parse(priority, "priority") if priority is not None else None
        )
        now = self._clock.now()

        with LogContext.bind(actor_id=actor.actor_id, entity_id=requisition_id):
            with UnitOfWork(self._session, "update_requisition", requisition_id=str(requisition_id)):
                pr = self._load(actor, requisition_id, for_update=True)
                self._require_editable(pr, "update")
                if items is not None:
                    pr.lines.clear()
                    # old line numbers must be gone before new ones are inserted
                    self._session.flush()
                    pr.lines.extend(self._build_lines(items, actor.actor_id, now))
                if required_by is not None:
                    pr.required_by = required_by
                if parsed_priority is not None:
                    pr.priority = parsed_priority.value
                if notes is not None:
                    pr.notes = notes
                pr.updated_by_id = actor.actor_id
                self._session.flush()
                dto = pr.to_dto()

        logger.info(
            "requisition_updated",
            extra={
                "requisition_id": str(requisition_id),
                "lines_replaced": items is not None,
                "line_count": len(dto.lines),
            },
        )
        return dto

    def delete_requisition(self, actor: Actor, requisition_id: UUID) -> None:
        self._policy.require(actor, REQUISITION_WORKFLOW.name, "delete")
        with LogContext.bind(actor_id=actor.actor_id, entity_id=requisition_id):
            with UnitOfWork(self._session, "delete_requisition", requisition_id=str(requisition_id)):
                pr = self._load(actor, requisition_id, for_update=True)
                self._require_editable(pr, "delete")
                pr_number = pr.pr_number
                self._session.delete(pr)
        logger.info(
            "requisition_deleted",
            extra={"requisition_id": str(requisition_id), "pr_number": pr_number},
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def submit_requisition(self, actor: Actor, requisition_id: UUID) -> Requisition:
        self._policy.require(actor, REQUISITION_WORKFLOW.name, "submit")
        today = self._clock.today()
        now = self._clock.now()

        with LogContext.bind(actor_id=actor.actor_id, entity_id=requisition_id):
            with UnitOfWork(self._session, "submit_requisition", requisition_id=str(requisition_id)):
                pr = self._load(actor, requisition_id, for_update=True)
                transition = REQUISITION_WORKFLOW.require_transition(
                    _ENTITY, pr.id, pr.status, "submit",
                )
                if not pr.lines:
                    raise ValidationError("items", "a requisition needs at least one line item")
                self._validate_required_by(pr.required_by, today)
                pr.status = transition.to_state
                pr.submitted_at = now
                pr.updated_by_id = actor.actor_id
                dto = pr.to_dto()

        logger.info(
            "requisition_submitted",
            extra={"requisition_id": str(requisition_id), "pr_number": dto.pr_number},
        )
        return dto

    def decide_requisition(
        self,
        actor: Actor,
        requisition_id: UUID,
        decision: str | RequisitionDecision,
        reason: str | None = None,
    ) -> Requisition:
        """
        Approve or reject a submitted requisition.

        A rejection needs a non-empty reason, stored verbatim.  For an
        approval the reason, if any, is kept as approval comments.
        """
        verdict = RequisitionDecision.parse(decision, "decision")
        action = verdict.value
        self._policy.require(actor, REQUISITION_WORKFLOW.name, action)
        now = self._clock.now()

        with LogContext.bind(actor_id=actor.actor_id, entity_id=requisition_id):
            with UnitOfWork(self._session, f"{action}_requisition", requisition_id=str(requisition_id)):
                pr = self._load(actor, requisition_id, for_update=True)
                transition = REQUISITION_WORKFLOW.require_transition(
                    _ENTITY, pr.id, pr.status, action,
                )
                if transition.guard is REJECTION_REASON_GIVEN and not (reason or "").strip():
                    raise ValidationError("reason", "a rejection reason is required")
                pr.status = transition.to_state
                if verdict is RequisitionDecision.APPROVE:
                    pr.approved_by = actor.actor_id
                    pr.approved_at = now
                    pr.approval_comments = reason
                else:
                    pr.rejected_by = actor.actor_id
                    pr.rejected_at = now
                    pr.rejection_reason = reason
                pr.updated_by_id = actor.actor_id
                dto = pr.to_dto()

        logger.info(
            "requisition_decided",
            extra={
                "requisition_id": str(requisition_id),
                "pr_number": dto.pr_number,
                "decision": action,
            },
        )
        return dto

    def approve_requisition(
        self, actor: Actor, requisition_id: UUID, comments: str | None = None,
    ) -> Requisition:
        return self.decide_requisition(actor, requisition_id, RequisitionDecision.APPROVE, comments)

    def reject_requisition(self, actor: Actor, requisition_id: UUID, reason: str) -> Requisition:
        return self.decide_requisition(actor, requisition_id, RequisitionDecision.REJECT, reason)

    def convert_to_rfq(
        self,
        actor: Actor,
        requisition_id: UUID,
        vendor_ids: Sequence[UUID],
        submission_deadline: datetime,
        terms: RFQTerms | None = None,
    ) -> RFQ:
        """
        Turn an approved requisition into an ``open`` RFQ.

        Lines are copied by value; later edits to either document do not
        touch the other.  One invitation is created per distinct vendor.
        """
        self._policy.require(actor, REQUISITION_WORKFLOW.name, "convert")
        now = self._clock.now()

        logger.info(
            "requisition_conversion_started",
            extra={"requisition_id": str(requisition_id), "vendor_count": len(vendor_ids)},
        )
        with LogContext.bind(actor_id=actor.actor_id, entity_id=requisition_id):
            with UnitOfWork(self._session, "convert_to_rfq", requisition_id=str(requisition_id)):
                pr = self._load(actor, requisition_id, for_update=True)
                transition = REQUISITION_WORKFLOW.require_transition(
                    _ENTITY, pr.id, pr.status, "convert",
                )
                if not vendor_ids:
                    raise ValidationError("vendor_ids", "at least one vendor is required")
                self._check_vendors(actor.company_id, vendor_ids)

                rfq = build_rfq(
                    self._session,
                    self._numbers,
                    self._rfq_config,
                    company_id=actor.company_id,
                    actor_id=actor.actor_id,
                    now=now,
                    lines=[
                        RFQLineInput(
                            item_code=line.item_code,
                            item_description=line.item_description,
                            quantity=line.quantity,
                            unit=line.unit,
                            material_id=line.material_id,
                            required_date=line.required_date,
                            specification=line.specification,
                            estimated_unit_price=line.estimated_unit_price,
                            source_requisition_line_id=line.id,
                        )
                        for line in pr.lines
                    ],
                    vendor_ids=vendor_ids,
                    submission_deadline=submission_deadline,
                    terms=terms or RFQTerms(),
                    status=RFQStatus.OPEN,
                    requisition_id=pr.id,
                )
                pr.status = transition.to_state
                pr.converted_rfq_id = rfq.id
                pr.updated_by_id = actor.actor_id
                rfq_dto = rfq.to_dto()

        logger.info(
            "requisition_converted",
            extra={
                "requisition_id": str(requisition_id),
                "rfq_id": str(rfq_dto.id),
                "rfq_number": rfq_dto.rfq_number,
                "vendor_count": len(rfq_dto.invitations),
            },
        )
        return rfq_dto

    # =========================================================================
    # Queries
    # =========================================================================

    def get_requisition(self, actor: Actor, requisition_id: UUID) -> Requisition:
        return self._selector.get(actor.company_id, requisition_id)

    def list_requisitions(
        self,
        actor: Actor,
        status: str | RequisitionStatus | None = None,
        factory_id: UUID | None = None,
    ) -> list[Requisition]:
        parsed = RequisitionStatus.parse(status, "status") if status is not None else None
        return self._selector.list(actor.company_id, parsed, factory_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(
        self, actor: Actor, requisition_id: UUID, for_update: bool = False,
    ) -> PurchaseRequisitionModel:
        stmt = (
            select(PurchaseRequisitionModel)
            .where(PurchaseRequisitionModel.id == requisition_id)
            .where(PurchaseRequisitionModel.company_id == actor.company_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        pr = self._session.execute(stmt).scalar_one_or_none()
        if pr is None:
            raise NotFoundError(_ENTITY, str(requisition_id))
        return pr

    def _validate_lines(self, items: Sequence[RequisitionLineInput]) -> None:
        validate_items(items)
        if self._config.max_lines and len(items) > self._config.max_lines:
            raise ValidationError(
                "items", f"at most {self._config.max_lines} lines are allowed",
            )

    @staticmethod
    def _validate_required_by(required_by: date, today: date) -> None:
        if required_by < today:
            raise ValidationError(
                "required_by", f"{required_by.isoformat()} is before {today.isoformat()}",
            )

    @staticmethod
    def _require_editable(pr: PurchaseRequisitionModel, action: str) -> None:
        if pr.status not in EDITABLE_STATES:
            raise StateTransitionError(
                entity_type=_ENTITY,
                entity_id=str(pr.id),
                current_state=pr.status,
                action=action,
                reason="only draft requisitions can be changed",
            )

    def _check_vendors(self, company_id: UUID, vendor_ids: Sequence[UUID]) -> None:
        if self._vendors is None:
            return
        for vendor_id in dict.fromkeys(vendor_ids):
            if self._vendors.get_vendor(company_id, vendor_id) is None:
                raise NotFoundError("vendor", str(vendor_id))

    @staticmethod
    def _build_lines(
        items: Sequence[RequisitionLineInput], actor_id: UUID, now: datetime,
    ) -> list[RequisitionLineModel]:
        return [
            RequisitionLineModel(
                line_number=number,
                material_id=item.material_id,
                item_code=item.item_code.strip(),
                item_description=item.item_description,
                quantity=Decimal(item.quantity),
                unit=item.unit,
                required_date=item.required_date,
                specification=item.specification,
                estimated_unit_price=item.estimated_unit_price,
                created_at=now,
                created_by_id=actor_id,
            )
            for number, item in enumerate(items, start=1)
        ]
