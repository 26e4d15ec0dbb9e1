"""
RFQ Module Service (``sourcing_modules.rfq.service``).

Responsibility
--------------
Runs the request-for-quotation lifecycle after an RFQ exists: publishing,
emailing invited vendors, resending, reminding, closing, cancelling and
awarding.  Creating an RFQ directly (without a requisition) also lives
here; conversion from a requisition lives in ``RequisitionService``.

Architecture position
---------------------
**Modules layer** -- thin glue over the kernel.  Depends on the
``MailSender`` and ``VendorDirectory`` collaborators declared in
``sourcing_modules.rfq.gateways``.

Invariants enforced
-------------------
* Each public method owns its transaction (``UnitOfWork``).
* Every transition is checked against ``RFQ_WORKFLOW`` before any write.
* Dispatch is per vendor: one vendor's failure (no address, mail error)
  never stops the others, and is recorded as a failed log row.
* The RFQ becomes ``sent`` only when at least one vendor was emailed.

Failure modes
-------------
* ``StateTransitionError`` when the action is illegal from the current state.
* ``ValidationError`` for missing reasons or vendors that are not invited.
* ``NotFoundError`` for RFQs outside the actor's company.
* ``MailDeliveryError`` never escapes: it becomes a failed
  ``VendorDispatchResult``.

Usage::

    service = RFQService(session, clock=clock, mail_sender=smtp, vendor_directory=vendors)
    report = service.send_rfq(actor, rfq_id)
    for failure in report.failures:
        ...
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sourcing_kernel.db.unit_of_work import UnitOfWork
from sourcing_kernel.domain.access_policy import AccessPolicy, Actor
from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.exceptions import (
    MailDeliveryError,
    NotFoundError,
    SourcingError,
    StateTransitionError,
    ValidationError,
)
from sourcing_kernel.logging_config import LogContext, get_logger
from sourcing_kernel.services.sequence_service import DocumentNumberService
from sourcing_modules.rfq.builder import append_email_log, build_rfq
from sourcing_modules.rfq.config import RFQConfig
from sourcing_modules.rfq.gateways import MailSender, OutboundMessage, VendorDirectory
from sourcing_modules.rfq.models import (
    RFQ,
    DispatchDirection,
    DispatchReport,
    DispatchStatus,
    EmailDispatchEntry,
    EmailType,
    ReminderReport,
    RFQLineInput,
    RFQStatus,
    RFQTerms,
    VendorDispatchResult,
)
from sourcing_modules.rfq.orm import (
    EmailDispatchLogModel,
    RFQModel,
    RFQVendorInvitationModel,
)
from sourcing_modules.rfq.workflows import (
    CANCELLATION_REASON_GIVEN,
    RFQ_WORKFLOW,
    SOLICITING_STATES,
)

logger = get_logger("modules.rfq.service")


class RFQService:
    """
    Request-for-quotation lifecycle operations.

    Contract
    --------
    * Lifecycle methods return the updated ``RFQ`` DTO.
    * Dispatch methods return a ``DispatchReport`` listing every vendor.

    Non-goals
    ---------
    * Does NOT render rich email templates; the body is plain text.
    * Does NOT read vendor replies (see ``ReconciliationService``).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: RFQConfig | None = None,
        mail_sender: MailSender | None = None,
        vendor_directory: VendorDirectory | None = None,
        access_policy: AccessPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or RFQConfig.with_defaults()
        self._mail = mail_sender
        self._vendors = vendor_directory
        self._policy = access_policy or AccessPolicy()
        self._numbers = DocumentNumberService(session)

    # =========================================================================
    # Creation and lifecycle
    # =========================================================================

    def create_rfq(
        self,
        actor: Actor,
        items: Sequence[RFQLineInput],
        vendor_ids: Sequence[UUID],
        submission_deadline: datetime,
        terms: RFQTerms | None = None,
        publish: bool = False,
    ) -> RFQ:
        """Create an RFQ without a requisition, as ``draft`` (or ``open`` when published)."""
        self._policy.require(actor, RFQ_WORKFLOW.name, "create")
        if publish:
            self._policy.require(actor, RFQ_WORKFLOW.name, "publish")
        now = self._clock.now()
        logger.info(
            "rfq_create_started",
            extra={"item_count": len(items), "vendor_count": len(vendor_ids)},
        )
        with LogContext.bind(actor_id=actor.actor_id, company_id=actor.company_id):
            with UnitOfWork(self._session, "create_rfq"):
                rfq = build_rfq(
                    self._session,
                    self._numbers,
                    self._config,
                    company_id=actor.company_id,
                    actor_id=actor.actor_id,
                    now=now,
                    lines=items,
                    vendor_ids=vendor_ids,
                    submission_deadline=submission_deadline,
                    terms=terms or RFQTerms(),
                    status=RFQStatus.OPEN if publish else RFQStatus.DRAFT,
                )
                dto = rfq.to_dto()
        logger.info(
            "rfq_created",
            extra={"rfq_id": str(dto.id), "rfq_number": dto.rfq_number, "status": dto.status},
        )
        return dto

    def publish_rfq(self, actor: Actor, rfq_id: UUID) -> RFQ:
        return self._transition(actor, rfq_id, "publish")

    def close_rfq(self, actor: Actor, rfq_id: UUID) -> RFQ:
        """Stop soliciting; quotations already received can now be compared and awarded."""
        return self._transition(actor, rfq_id, "close", stamp="closed_at")

    def cancel_rfq(self, actor: Actor, rfq_id: UUID, reason: str) -> RFQ:
        return self._transition(
            actor, rfq_id, "cancel", stamp="cancelled_at", reason=reason,
        )

    def award_rfq(self, actor: Actor, rfq_id: UUID) -> RFQ:
        return self._transition(actor, rfq_id, "award", stamp="awarded_at")

    def _transition(
        self,
        actor: Actor,
        rfq_id: UUID,
        action: str,
        stamp: str | None = None,
        reason: str | None = None,
    ) -> RFQ:
        self._policy.require(actor, RFQ_WORKFLOW.name, action)
        now = self._clock.now()
        with LogContext.bind(actor_id=actor.actor_id, entity_id=rfq_id):
            with UnitOfWork(self._session, f"{action}_rfq", rfq_id=str(rfq_id)):
                rfq = self._load(actor, rfq_id, for_update=True)
                previous = rfq.status
                transition = RFQ_WORKFLOW.require_transition("rfq", rfq.id, rfq.status, action)
                if transition.guard is CANCELLATION_REASON_GIVEN:
                    if not (reason or "").strip():
                        raise ValidationError("reason", "a cancellation reason is required")
                    rfq.cancellation_reason = reason
                rfq.status = transition.to_state
                if stamp:
                    setattr(rfq, stamp, now)
                rfq.updated_by_id = actor.actor_id
                dto = rfq.to_dto()
        logger.info(
            "rfq_status_changed",
            extra={
                "rfq_id": str(rfq_id),
                "rfq_number": dto.rfq_number,
                "action": action,
                "from_status": previous,
                "to_status": dto.status,
            },
        )
        return dto

    # =========================================================================
    # Dispatch
    # =========================================================================

    def send_rfq(
        self,
        actor: Actor,
        rfq_id: UUID,
        vendor_ids: Sequence[UUID] | None = None,
        subject: str | None = None,
        body: str | None = None,
        cc: Sequence[str] = (),
    ) -> DispatchReport:
        """
        Email the RFQ to invited vendors that have not been emailed yet.

        ``vendor_ids`` narrows the recipients; each must be invited.  Vendors
        that already received the RFQ are skipped.
        """
        self._policy.require(actor, RFQ_WORKFLOW.name, "send")
        mail, vendors = self._require_mail_collaborators()
        now = self._clock.now()

        with LogContext.bind(actor_id=actor.actor_id, entity_id=rfq_id):
            with UnitOfWork(self._session, "send_rfq", rfq_id=str(rfq_id)):
                rfq = self._load(actor, rfq_id, for_update=True)
                transition = RFQ_WORKFLOW.require_transition("rfq", rfq.id, rfq.status, "send")

                targets = self._select_invitations(rfq, vendor_ids)
                pending = [inv for inv in targets if not inv.email_sent]
                if not pending:
                    raise StateTransitionError(
                        entity_type="rfq",
                        entity_id=str(rfq.id),
                        current_state=rfq.status,
                        action="send",
                        reason="every selected vendor was already emailed",
                    )

                results = [
                    self._dispatch(
                        actor, rfq, inv, EmailType.RFQ_SENT, now, mail, vendors,
                        subject=subject, body=body, cc=cc,
                    )
                    for inv in pending
                ]

                if any(r.success for r in results):
                    if rfq.status != transition.to_state:
                        rfq.status = transition.to_state
                        rfq.sent_at = now
                    rfq.updated_by_id = actor.actor_id
                report = DispatchReport(
                    rfq_id=rfq.id,
                    rfq_number=rfq.rfq_number,
                    email_type=EmailType.RFQ_SENT,
                    results=tuple(results),
                )
                status = rfq.status

        logger.info(
            "rfq_dispatched",
            extra={
                "rfq_id": str(rfq_id),
                "rfq_number": report.rfq_number,
                "sent_count": report.sent_count,
                "failed_count": report.failed_count,
                "status": status,
            },
        )
        return report

    def resend_rfq(
        self, actor: Actor, rfq_id: UUID, vendor_ids: Sequence[UUID],
    ) -> DispatchReport:
        """Send the RFQ again to chosen vendors.  Counts as a reminder."""
        self._policy.require(actor, RFQ_WORKFLOW.name, "remind")
        mail, vendors = self._require_mail_collaborators()
        now = self._clock.now()

        with LogContext.bind(actor_id=actor.actor_id, entity_id=rfq_id):
            with UnitOfWork(self._session, "resend_rfq", rfq_id=str(rfq_id)):
                rfq = self._load(actor, rfq_id, for_update=True)
                self._require_soliciting(rfq, "resend")
                if not vendor_ids:
                    raise ValidationError("vendor_ids", "at least one vendor is required")
                targets = self._select_invitations(rfq, vendor_ids)
                results = tuple(
                    self._dispatch(actor, rfq, inv, EmailType.REMINDER_SENT, now, mail, vendors)
                    for inv in targets
                )
                report = DispatchReport(
                    rfq_id=rfq.id,
                    rfq_number=rfq.rfq_number,
                    email_type=EmailType.REMINDER_SENT,
                    results=results,
                )

        logger.info(
            "rfq_resent",
            extra={
                "rfq_id": str(rfq_id),
                "sent_count": report.sent_count,
                "failed_count": report.failed_count,
            },
        )
        return report

    def send_reminders(self, actor: Actor) -> ReminderReport:
        """
        Remind vendors that have not answered an overdue RFQ.

        An RFQ qualifies when it is ``sent`` and its deadline has passed.  An
        invitation qualifies when it was emailed, has no response, has had
        fewer than ``max_reminders`` reminders, and its last reminder is at
        least ``reminder_interval_days`` old.  Each RFQ is its own transaction.
        """
        self._policy.require(actor, RFQ_WORKFLOW.name, "remind")
        mail, vendors = self._require_mail_collaborators()
        now = self._clock.now()

        overdue_ids = self._session.execute(
            select(RFQModel.id)
            .where(RFQModel.company_id == actor.company_id)
            .where(RFQModel.status.in_(SOLICITING_STATES))
            .where(RFQModel.submission_deadline < now)
            .order_by(RFQModel.rfq_number)
        ).scalars().all()
        self._session.rollback()

        reports: list[DispatchReport] = []
        for rfq_id in overdue_ids:
            with LogContext.bind(actor_id=actor.actor_id, entity_id=rfq_id):
                with UnitOfWork(self._session, "send_reminders", rfq_id=str(rfq_id)):
                    rfq = self._load(actor, rfq_id, for_update=True)
                    due = [inv for inv in rfq.invitations if self._reminder_due(inv, now)]
                    if not due:
                        continue
                    results = tuple(
                        self._dispatch(
                            actor, rfq, inv, EmailType.REMINDER_SENT, now, mail, vendors,
                        )
                        for inv in due
                    )
                    reports.append(
                        DispatchReport(
                            rfq_id=rfq.id,
                            rfq_number=rfq.rfq_number,
                            email_type=EmailType.REMINDER_SENT,
                            results=results,
                        )
                    )

        report = ReminderReport(rfqs_checked=len(overdue_ids), reports=tuple(reports))
        logger.info(
            "rfq_reminders_completed",
            extra={
                "rfqs_checked": report.rfqs_checked,
                "reminders_sent": report.reminders_sent,
                "reminders_failed": report.reminders_failed,
            },
        )
        return report

    def _reminder_due(self, inv: RFQVendorInvitationModel, now: datetime) -> bool:
        if not inv.email_sent or inv.response_received:
            return False
        if inv.reminder_count >= self._config.max_reminders:
            return False
        if inv.last_reminder_at is None:
            return True
        return now - inv.last_reminder_at >= timedelta(days=self._config.reminder_interval_days)

    def _dispatch(
        self,
        actor: Actor,
        rfq: RFQModel,
        inv: RFQVendorInvitationModel,
        email_type: EmailType,
        now: datetime,
        mail: MailSender,
        vendors: VendorDirectory,
        subject: str | None = None,
        body: str | None = None,
        cc: Sequence[str] = (),
    ) -> VendorDispatchResult:
        """Email one vendor and record the outcome.  Never raises MailDeliveryError."""
        contact = vendors.get_vendor(rfq.company_id, inv.vendor_id)
        address = contact.email if contact else None
        reminder = email_type == EmailType.REMINDER_SENT
        template = (
            self._config.reminder_subject_template if reminder
            else self._config.subject_template
        )
        subject = subject or template.format(rfq_number=rfq.rfq_number)

        if not address:
            error = "vendor not found" if contact is None else "vendor has no email address"
            logger.warning(
                "rfq_dispatch_skipped",
                extra={"rfq_id": str(rfq.id), "vendor_id": str(inv.vendor_id), "reason": error},
            )
            append_email_log(
                self._session,
                rfq_id=rfq.id,
                vendor_id=inv.vendor_id,
                direction=DispatchDirection.OUTBOUND,
                email_type=email_type,
                status=DispatchStatus.FAILED,
                occurred_at=now,
                actor_id=actor.actor_id,
                subject=subject,
                error=error,
            )
            return VendorDispatchResult(vendor_id=inv.vendor_id, success=False, error=error)

        message = OutboundMessage(
            to=address,
            subject=subject,
            body=body or self._render_body(rfq, contact.name, reminder),
            cc=tuple(cc),
            reply_to=self._config.reply_to_address,
            headers={"X-RFQ-Number": rfq.rfq_number},
        )
        try:
            receipt = mail.send(message)
        except MailDeliveryError as exc:
            logger.warning(
                "rfq_dispatch_failed",
                extra={"rfq_id": str(rfq.id), "vendor_id": str(inv.vendor_id)},
                exc_info=True,
            )
            append_email_log(
                self._session,
                rfq_id=rfq.id,
                vendor_id=inv.vendor_id,
                direction=DispatchDirection.OUTBOUND,
                email_type=email_type,
                status=DispatchStatus.FAILED,
                occurred_at=now,
                actor_id=actor.actor_id,
                address=address,
                subject=subject,
                error=exc.reason,
            )
            return VendorDispatchResult(
                vendor_id=inv.vendor_id, success=False, email_address=address, error=exc.reason,
            )

        if reminder:
            inv.reminder_count += 1
            inv.last_reminder_at = now
        if not inv.email_sent:
            inv.email_sent = True
            inv.email_sent_at = now
        inv.updated_by_id = actor.actor_id
        append_email_log(
            self._session,
            rfq_id=rfq.id,
            vendor_id=inv.vendor_id,
            direction=DispatchDirection.OUTBOUND,
            email_type=email_type,
            status=DispatchStatus.SENT,
            occurred_at=now,
            actor_id=actor.actor_id,
            address=address,
            subject=subject,
            external_message_id=receipt.message_id,
        )
        return VendorDispatchResult(
            vendor_id=inv.vendor_id,
            success=True,
            email_address=address,
            message_id=receipt.message_id,
        )

    def _render_body(self, rfq: RFQModel, vendor_name: str, reminder: bool) -> str:
        opening = (
            f"This is a reminder that we have not yet received your quotation for {rfq.rfq_number}."
            if reminder
            else f"Please quote for the items below against {rfq.rfq_number}."
        )
        lines = [f"Dear {vendor_name},", "", opening, ""]
        for line in rfq.lines:
            lines.append(
                f"{line.line_number}. {line.item_code} - {line.item_description}: "
                f"{line.quantity.normalize():f} {line.unit}"
            )
        lines.append("")
        lines.append(f"Submission deadline: {rfq.submission_deadline.isoformat()}")
        if rfq.payment_terms:
            lines.append(f"Payment terms: {rfq.payment_terms}")
        if rfq.delivery_terms:
            lines.append(f"Delivery terms: {rfq.delivery_terms}")
        if rfq.special_instructions:
            lines.append(rfq.special_instructions)
        lines.append(f"Please keep your quotation valid for {rfq.validity_days} days.")
        return "\n".join(lines)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_rfq(self, actor: Actor, rfq_id: UUID) -> RFQ:
        return self._load(actor, rfq_id).to_dto()

    def list_rfqs(self, actor: Actor, status: str | RFQStatus | None = None) -> list[RFQ]:
        stmt = select(RFQModel).where(RFQModel.company_id == actor.company_id)
        if status is not None:
            stmt = stmt.where(RFQModel.status == RFQStatus.parse(status, "status").value)
        rows = self._session.execute(stmt.order_by(RFQModel.rfq_number)).scalars().all()
        return [row.to_dto() for row in rows]

    def get_email_history(self, actor: Actor, rfq_id: UUID) -> list[EmailDispatchEntry]:
        self._load(actor, rfq_id)
        rows = self._session.execute(
            select(EmailDispatchLogModel)
            .where(EmailDispatchLogModel.rfq_id == rfq_id)
            .order_by(EmailDispatchLogModel.occurred_at, EmailDispatchLogModel.created_at)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, actor: Actor, rfq_id: UUID, for_update: bool = False) -> RFQModel:
        stmt = (
            select(RFQModel)
            .where(RFQModel.id == rfq_id)
            .where(RFQModel.company_id == actor.company_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        rfq = self._session.execute(stmt).scalar_one_or_none()
        if rfq is None:
            raise NotFoundError("rfq", str(rfq_id))
        return rfq

    def _select_invitations(
        self, rfq: RFQModel, vendor_ids: Sequence[UUID] | None,
    ) -> list[RFQVendorInvitationModel]:
        if vendor_ids is None:
            return list(rfq.invitations)
        selected = []
        for vendor_id in dict.fromkeys(vendor_ids):
            inv = rfq.invitation_for(vendor_id)
            if inv is None:
                raise ValidationError(
                    "vendor_ids", f"vendor {vendor_id} is not invited to {rfq.rfq_number}",
                )
            selected.append(inv)
        return selected

    def _require_soliciting(self, rfq: RFQModel, action: str) -> None:
        if rfq.status not in SOLICITING_STATES:
            raise StateTransitionError(
                entity_type="rfq",
                entity_id=str(rfq.id),
                current_state=rfq.status,
                action=action,
                reason="RFQ is not awaiting quotations",
            )

    def _require_mail_collaborators(self) -> tuple[MailSender, VendorDirectory]:
        if self._mail is None or self._vendors is None:
            raise SourcingError("RFQ dispatch needs a mail sender and a vendor directory")
        return self._mail, self._vendors
