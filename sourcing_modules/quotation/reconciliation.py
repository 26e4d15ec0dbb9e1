"""
Quotation Reconciliation Service (``sourcing_modules.quotation.reconciliation``).

Responsibility
--------------
Turns inbound vendor email into stored quotation responses exactly once
per (rfq, vendor, message), reads a quotation out of each new reply, and
cleans up duplicate responses that were stored before that guarantee
held.

Architecture position
---------------------
**Modules layer** -- orchestrates the pure engines
``sourcing_engines.classification``, ``sourcing_engines.extraction`` and
``sourcing_engines.deduplication`` over the shared store.

Invariants enforced
-------------------
* Ingestion is idempotent on the matching key (external_message_id,
  rfq_id, vendor_id).  The invitation row is locked while the key is
  checked, so two concurrent ingestions of one message store one row.
* The canonical response of a key is the earliest by created_at, id
  breaking ties.  The dedup sweep keeps it and deletes the others, along
  with the quotations read from them and their redundant inbound log rows.
* The sweep commits group by group.  A failed group is reported and never
  blocks the others; re-running the sweep finishes the job.
* A failed acknowledgment email never undoes an ingestion.

Failure modes
-------------
* ``NotFoundError`` for an RFQ outside the actor's company or a vendor not
  invited to it.
* ``StateTransitionError`` when the RFQ no longer accepts replies.
* ``ReconciliationPartialFailure`` from ``DedupSweepSummary.raise_for_failures``.

Usage::

    service = ReconciliationService(session, clock=clock, mail_sender=smtp)
    result = service.ingest_response(actor, rfq_id, vendor_id, message)
    summary = service.run_dedup_sweep(actor)
    summary.raise_for_failures()
"""

from __future__ import annotations

from collections import Counter
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from sourcing_engines.classification import (
    EmailCategory,
    classify_email,
    find_rfq_number,
    parse_sender,
)
from sourcing_engines.comparison import RFQItem
from sourcing_engines.deduplication import (
    DuplicateGroup,
    DuplicateStatistics,
    ResponseRecord,
    duplicate_statistics,
    plan_deduplication,
)
from sourcing_engines.extraction import ExtractedQuotation, extract_quotation
from sourcing_kernel.db.unit_of_work import UnitOfWork
from sourcing_kernel.domain.access_policy import AccessPolicy, Actor
from sourcing_kernel.domain.clock import Clock, SystemClock
from sourcing_kernel.exceptions import (
    ExtractionError,
    MailDeliveryError,
    NotFoundError,
    SourcingError,
    ValidationError,
)
from sourcing_kernel.logging_config import LogContext, get_logger
from sourcing_kernel.services.sequence_service import DocumentNumberService
from sourcing_modules.quotation.builder import build_quotation, lines_from_extraction
from sourcing_modules.quotation.config import QuotationConfig
from sourcing_modules.quotation.models import (
    DedupSweepSummary,
    GroupOutcome,
    InboxAction,
    InboxMessageOutcome,
    InboxReport,
    IngestionAction,
    IngestionResult,
    QuotationResponse,
    ResponseProcessingStatus,
)
from sourcing_modules.quotation.orm import (
    ComparisonDecisionModel,
    QuotationModel,
    QuotationResponseModel,
)
from sourcing_modules.quotation.service import (
    load_rfq,
    lock_invitation,
    require_accepting_replies,
)
from sourcing_modules.quotation.workflows import RESPONSE_WORKFLOW
from sourcing_modules.rfq.builder import append_email_log
from sourcing_modules.rfq.gateways import (
    InboundMessage,
    InboxReader,
    MailSender,
    OutboundMessage,
    QuotationExtractor,
    VendorDirectory,
)
from sourcing_modules.rfq.models import DispatchDirection, DispatchStatus, EmailType
from sourcing_modules.rfq.orm import EmailDispatchLogModel, RFQModel
from sourcing_modules.rfq.workflows import RESPONSE_ACCEPTING_STATES

logger = get_logger("modules.quotation.reconciliation")


class ReconciliationService:
    """
    Inbound quotation email: ingestion, inbox processing and the dedup sweep.

    Contract
    --------
    * ``ingest_response`` owns one transaction.
    * ``process_inbox`` ingests each message in its own transaction and
      reports every message, including the ones it skipped.
    * ``run_dedup_sweep`` owns one transaction per duplicate group.

    Non-goals
    ---------
    * Does NOT classify with a model; the keyword rules are the only
      classifier.  An AI extractor may be injected for line items.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: QuotationConfig | None = None,
        extractor: QuotationExtractor | None = None,
        mail_sender: MailSender | None = None,
        vendor_directory: VendorDirectory | None = None,
        access_policy: AccessPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or QuotationConfig.with_defaults()
        self._extractor = extractor
        self._mail = mail_sender
        self._vendors = vendor_directory
        self._policy = access_policy or AccessPolicy()
        self._numbers = DocumentNumberService(session)

    # =========================================================================
    # Ingestion
    # =========================================================================

    def ingest_response(
        self,
        actor: Actor,
        rfq_id: UUID,
        vendor_id: UUID,
        message: InboundMessage,
    ) -> IngestionResult:
        """
        Store one vendor reply, unless it is already stored.

        A new reply is saved as ``pending_review``, logged as an inbound
        email, and read for line items.  When items are found a quotation
        is created from them.  The invitation is marked as answered.
        """
        self._policy.require(actor, RESPONSE_WORKFLOW.name, "ingest")
        if not (message.external_message_id or "").strip():
            raise ValidationError("external_message_id", "inbound message has no message id")
        now = self._clock.now()

        with LogContext.bind(actor_id=actor.actor_id, entity_id=rfq_id):
            with UnitOfWork(
                self._session,
                "ingest_response",
                rfq_id=str(rfq_id),
                external_message_id=message.external_message_id,
            ):
                rfq = load_rfq(self._session, actor.company_id, rfq_id)
                inv = lock_invitation(self._session, rfq.id, vendor_id)

                existing = self._canonical_response(rfq.id, vendor_id, message.external_message_id)
                if existing is not None:
                    logger.info(
                        "quotation_response_duplicate",
                        extra={
                            "external_message_id": message.external_message_id,
                            "response_id": str(existing.id),
                        },
                    )
                    return IngestionResult(
                        action=IngestionAction.DUPLICATE,
                        response=existing.to_dto(),
                    )

                require_accepting_replies(rfq, "ingest_response")

                response = QuotationResponseModel(
                    company_id=actor.company_id,
                    rfq_id=rfq.id,
                    vendor_id=vendor_id,
                    external_message_id=message.external_message_id,
                    from_address=message.from_address,
                    subject=message.subject or "",
                    body=message.body,
                    attachments=[dict(a) for a in message.attachments],
                    received_at=message.received_at,
                    processing_status=ResponseProcessingStatus.PENDING_REVIEW.value,
                    created_at=now,
                    created_by_id=actor.actor_id,
                )
                self._session.add(response)
                self._session.flush()

                append_email_log(
                    self._session,
                    rfq_id=rfq.id,
                    vendor_id=vendor_id,
                    direction=DispatchDirection.INBOUND,
                    email_type=EmailType.QUOTATION_RECEIVED,
                    status=DispatchStatus.RECEIVED,
                    occurred_at=message.received_at,
                    actor_id=actor.actor_id,
                    address=message.from_address,
                    subject=message.subject,
                    external_message_id=message.external_message_id,
                )

                extracted = self._extract(message, rfq)
                response.extracted_data = extracted.as_dict()
                quotation = None
                if extracted.has_items:
                    quotation = build_quotation(
                        self._session,
                        self._numbers,
                        self._config,
                        company_id=actor.company_id,
                        rfq_id=rfq.id,
                        vendor_id=vendor_id,
                        actor_id=actor.actor_id,
                        now=now,
                        lines=lines_from_extraction(extracted),
                        received_at=message.received_at,
                        response_id=response.id,
                        quotation_date=message.received_at.date(),
                        validity_days=extracted.validity_days,
                        payment_terms=extracted.payment_terms,
                        delivery_terms=extracted.delivery_terms,
                    )
                    response.quotation_id = quotation.id
                response.processed_at = now

                if not inv.response_received:
                    inv.response_received = True
                    inv.response_received_at = message.received_at
                    inv.updated_by_id = actor.actor_id

                rfq_number = rfq.rfq_number
                response_dto = response.to_dto()
                quotation_dto = quotation.to_dto() if quotation is not None else None

        logger.info(
            "quotation_response_ingested",
            extra={
                "response_id": str(response_dto.id),
                "external_message_id": message.external_message_id,
                "vendor_id": str(vendor_id),
                "extraction_method": extracted.method,
                "line_count": len(extracted.lines),
                "quotation_number": quotation_dto.quotation_number if quotation_dto else None,
            },
        )

        acknowledged = None
        if self._mail is not None and self._config.send_acknowledgment:
            acknowledged = self._acknowledge(actor, rfq_id, rfq_number, vendor_id, message)

        return IngestionResult(
            action=IngestionAction.CREATED,
            response=response_dto,
            quotation=quotation_dto,
            acknowledged=acknowledged,
        )

    def _canonical_response(
        self, rfq_id: UUID, vendor_id: UUID, external_message_id: str,
    ) -> QuotationResponseModel | None:
        return self._session.execute(
            select(QuotationResponseModel)
            .where(QuotationResponseModel.rfq_id == rfq_id)
            .where(QuotationResponseModel.vendor_id == vendor_id)
            .where(QuotationResponseModel.external_message_id == external_message_id)
            .order_by(QuotationResponseModel.created_at, QuotationResponseModel.id)
            .limit(1)
        ).scalar_one_or_none()

    def _extract(self, message: InboundMessage, rfq: RFQModel) -> ExtractedQuotation:
        items = [
            RFQItem(
                item_code=line.item_code,
                item_description=line.item_description,
                quantity=line.quantity,
                unit=line.unit,
            )
            for line in rfq.lines
        ]
        if self._extractor is not None:
            try:
                return self._extractor.extract(message, items)
            except ExtractionError:
                logger.warning(
                    "quotation_extractor_failed",
                    extra={"external_message_id": message.external_message_id},
                    exc_info=True,
                )
        return extract_quotation(
            body=message.body,
            rfq_items=items,
            default_validity_days=rfq.validity_days or self._config.default_validity_days,
        )

    def _acknowledge(
        self,
        actor: Actor,
        rfq_id: UUID,
        rfq_number: str,
        vendor_id: UUID,
        message: InboundMessage,
    ) -> bool:
        """Thank the vendor for the reply.  Failures are logged, not raised."""
        _, address = parse_sender(message.from_address)
        subject = self._config.acknowledgment_subject_template.format(rfq_number=rfq_number)
        outbound = OutboundMessage(
            to=address,
            subject=subject,
            body=(
                f"We have received your quotation for {rfq_number}. "
                "Our purchase team will review it and get back to you."
            ),
            headers={"In-Reply-To": message.external_message_id, "X-RFQ-Number": rfq_number},
        )
        error = None
        message_id = None
        try:
            message_id = self._mail.send(outbound).message_id
        except MailDeliveryError as exc:
            error = exc.reason
            logger.warning(
                "quotation_acknowledgment_failed",
                extra={"rfq_id": str(rfq_id), "vendor_id": str(vendor_id)},
                exc_info=True,
            )

        with UnitOfWork(self._session, "log_acknowledgment", rfq_id=str(rfq_id)):
            append_email_log(
                self._session,
                rfq_id=rfq_id,
                vendor_id=vendor_id,
                direction=DispatchDirection.OUTBOUND,
                email_type=EmailType.QUOTATION_ACKNOWLEDGMENT,
                status=DispatchStatus.FAILED if error else DispatchStatus.SENT,
                occurred_at=self._clock.now(),
                actor_id=actor.actor_id,
                address=address,
                subject=subject,
                external_message_id=message_id,
                error=error,
            )
        return error is None

    # =========================================================================
    # Inbox
    # =========================================================================

    def process_inbox(
        self, actor: Actor, inbox: InboxReader, account: str | None = None,
    ) -> InboxReport:
        """
        Read the mailbox and ingest every quotation reply it can place.

        A message is placed when the keyword classifier calls it a
        quotation, its sender is a known vendor, it names an RFQ of the
        actor's company that is still accepting replies, and the vendor is
        invited to that RFQ.  Anything else is skipped with a reason.
        """
        self._policy.require(actor, RESPONSE_WORKFLOW.name, "ingest")
        if self._vendors is None:
            raise SourcingError("inbox processing needs a vendor directory")
        account = account or self._config.inbox_account

        messages = inbox.fetch_messages(account)
        logger.info(
            "inbox_processing_started",
            extra={"account": account, "message_count": len(messages)},
        )

        outcomes = []
        for message in messages:
            try:
                outcome = self._process_message(actor, message)
            except Exception as exc:
                self._session.rollback()
                logger.error(
                    "inbox_message_failed",
                    extra={"external_message_id": message.external_message_id},
                    exc_info=True,
                )
                outcome = InboxMessageOutcome(
                    external_message_id=message.external_message_id,
                    action=InboxAction.FAILED,
                    reason=f"{getattr(exc, 'code', 'UNHANDLED_EXCEPTION')}: {exc}",
                )
            outcomes.append(outcome)
        self._session.rollback()

        report = InboxReport(account=account, outcomes=tuple(outcomes))
        logger.info(
            "inbox_processing_completed",
            extra={
                "account": account,
                "ingested": report.ingested,
                "duplicates": report.duplicates,
                "skipped": report.skipped,
                "failed": report.failed,
            },
        )
        return report

    def _process_message(self, actor: Actor, message: InboundMessage) -> InboxMessageOutcome:
        def skipped(reason: str, **fields) -> InboxMessageOutcome:
            logger.info(
                "inbox_message_skipped",
                extra={"external_message_id": message.external_message_id, "reason": reason},
            )
            return InboxMessageOutcome(
                external_message_id=message.external_message_id,
                action=InboxAction.SKIPPED,
                reason=reason,
                **fields,
            )

        classification = classify_email(message.subject, message.body)
        if classification.category is not EmailCategory.QUOTATION:
            return skipped(f"not a quotation ({classification.category.value})")

        _, address = parse_sender(message.from_address)
        contact = self._vendors.find_vendor_by_email(actor.company_id, address)
        if contact is None:
            return skipped(f"unknown sender {address}")

        rfq_number = find_rfq_number(message.subject, message.body)
        if rfq_number is None:
            return skipped("no RFQ number found", vendor_id=contact.vendor_id)

        rfq = self._session.execute(
            select(RFQModel)
            .where(RFQModel.company_id == actor.company_id)
            .where(RFQModel.rfq_number == rfq_number)
        ).scalar_one_or_none()
        if rfq is None:
            return skipped(
                f"unknown RFQ {rfq_number}", rfq_number=rfq_number, vendor_id=contact.vendor_id,
            )
        if rfq.invitation_for(contact.vendor_id) is None:
            return skipped(
                f"vendor not invited to {rfq_number}",
                rfq_number=rfq_number,
                vendor_id=contact.vendor_id,
            )
        if rfq.status not in RESPONSE_ACCEPTING_STATES:
            return skipped(
                f"{rfq_number} is {rfq.status}",
                rfq_number=rfq_number,
                vendor_id=contact.vendor_id,
            )
        rfq_id = rfq.id

        result = self.ingest_response(actor, rfq_id, contact.vendor_id, message)
        return InboxMessageOutcome(
            external_message_id=message.external_message_id,
            action=InboxAction.DUPLICATE if result.is_duplicate else InboxAction.INGESTED,
            rfq_number=rfq_number,
            vendor_id=contact.vendor_id,
            response_id=result.response.id,
        )

    # =========================================================================
    # Dedup sweep
    # =========================================================================

    def run_dedup_sweep(self, actor: Actor, rfq_id: UUID | None = None) -> DedupSweepSummary:
        """
        Delete duplicate responses of the actor's company, keeping the
        earliest of each (external_message_id, rfq_id, vendor_id) group.
        """
        self._policy.require(actor, RESPONSE_WORKFLOW.name, "dedup_sweep")
        if rfq_id is not None:
            load_rfq(self._session, actor.company_id, rfq_id)

        records = self._load_records(actor.company_id, rfq_id)
        plan = plan_deduplication(records=records)
        self._session.rollback()

        logger.info(
            "dedup_sweep_started",
            extra={
                "total_records": plan.total_records,
                "groups_found": len(plan.groups),
                "records_to_delete": plan.records_to_delete,
            },
        )

        outcomes = []
        for group in plan.groups:
            try:
                with LogContext.bind(actor_id=actor.actor_id, entity_id=group.keep_id):
                    with UnitOfWork(self._session, "dedup_group", group_key=str(group.key)):
                        deleted, quotations, pruned = self._clean_group(group)
                outcomes.append(
                    GroupOutcome(
                        key=str(group.key),
                        keep_id=group.keep_id,
                        discard_ids=group.discard_ids,
                        success=True,
                        records_deleted=deleted,
                        quotations_deleted=quotations,
                        log_rows_pruned=pruned,
                    )
                )
            except Exception as exc:
                logger.error(
                    "dedup_group_failed",
                    extra={"group_key": str(group.key)},
                    exc_info=True,
                )
                outcomes.append(
                    GroupOutcome(
                        key=str(group.key),
                        keep_id=group.keep_id,
                        discard_ids=group.discard_ids,
                        success=False,
                        error_code=getattr(exc, "code", "UNHANDLED_EXCEPTION"),
                        error_message=str(exc),
                    )
                )

        summary = DedupSweepSummary(
            groups_found=len(plan.groups),
            records_deleted=sum(o.records_deleted for o in outcomes),
            log_rows_pruned=sum(o.log_rows_pruned for o in outcomes),
            outcomes=tuple(outcomes),
            current_summary=self._status_counts(actor.company_id, rfq_id),
        )
        self._session.rollback()

        log = logger.warning if summary.has_failures else logger.info
        log(
            "dedup_sweep_completed",
            extra={
                "groups_found": summary.groups_found,
                "records_deleted": summary.records_deleted,
                "log_rows_pruned": summary.log_rows_pruned,
                "failed_groups": len(summary.errors),
            },
        )
        return summary

    def _clean_group(self, group: DuplicateGroup) -> tuple[int, int, int]:
        """
        Delete one group's discarded responses.  Returns (responses, quotations, log rows).

        The survivor is locked first; if it has gone since planning, nothing
        is deleted.  Vendor selections that named a removed quotation are
        moved to the survivor's quotation, or cleared when it has none.
        """
        keep = self._session.execute(
            select(QuotationResponseModel)
            .where(QuotationResponseModel.id == group.keep_id)
            .with_for_update()
        ).scalar_one_or_none()
        if keep is None:
            raise NotFoundError("quotation_response", str(group.keep_id))

        discards = self._session.execute(
            select(QuotationResponseModel)
            .where(QuotationResponseModel.id.in_(group.discard_ids))
            .with_for_update()
        ).scalars().all()
        if not discards:
            return 0, 0, 0
        discard_ids = [r.id for r in discards]

        quotations = self._session.execute(
            select(QuotationModel).where(QuotationModel.response_id.in_(discard_ids))
        ).scalars().all()
        if quotations:
            survivor_quotation_id = self._session.execute(
                select(QuotationModel.id)
                .where(QuotationModel.response_id == keep.id)
                .order_by(QuotationModel.created_at)
                .limit(1)
            ).scalar_one_or_none()
            repointed = self._session.execute(
                update(ComparisonDecisionModel)
                .where(ComparisonDecisionModel.quotation_id.in_([q.id for q in quotations]))
                .values(quotation_id=survivor_quotation_id)
            ).rowcount
            if repointed:
                logger.info(
                    "comparison_decisions_repointed",
                    extra={
                        "keep_id": str(keep.id),
                        "quotation_id": str(survivor_quotation_id) if survivor_quotation_id else None,
                        "decision_count": repointed,
                    },
                )
        for quotation in quotations:
            self._session.delete(quotation)
        self._session.flush()

        log_rows = self._session.execute(
            select(EmailDispatchLogModel)
            .where(EmailDispatchLogModel.rfq_id == group.key.rfq_id)
            .where(EmailDispatchLogModel.vendor_id == group.key.vendor_id)
            .where(EmailDispatchLogModel.external_message_id == group.key.external_message_id)
            .where(EmailDispatchLogModel.direction == DispatchDirection.INBOUND.value)
            .where(EmailDispatchLogModel.email_type == EmailType.QUOTATION_RECEIVED.value)
            .order_by(
                EmailDispatchLogModel.occurred_at,
                EmailDispatchLogModel.created_at,
                EmailDispatchLogModel.id,
            )
        ).scalars().all()
        redundant_logs = log_rows[1:]
        for row in redundant_logs:
            self._session.delete(row)

        for response in discards:
            self._session.delete(response)
        return len(discards), len(quotations), len(redundant_logs)

    def _load_records(self, company_id: UUID, rfq_id: UUID | None) -> list[ResponseRecord]:
        stmt = select(
            QuotationResponseModel.id,
            QuotationResponseModel.external_message_id,
            QuotationResponseModel.rfq_id,
            QuotationResponseModel.vendor_id,
            QuotationResponseModel.created_at,
            QuotationResponseModel.processing_status,
        ).where(QuotationResponseModel.company_id == company_id)
        if rfq_id is not None:
            stmt = stmt.where(QuotationResponseModel.rfq_id == rfq_id)
        return [
            ResponseRecord(
                response_id=row.id,
                external_message_id=row.external_message_id,
                rfq_id=row.rfq_id,
                vendor_id=row.vendor_id,
                created_at=row.created_at,
                processing_status=row.processing_status,
            )
            for row in self._session.execute(stmt)
        ]

    def _status_counts(self, company_id: UUID, rfq_id: UUID | None) -> dict[str, int]:
        stmt = (
            select(QuotationResponseModel.processing_status, func.count())
            .where(QuotationResponseModel.company_id == company_id)
            .group_by(QuotationResponseModel.processing_status)
        )
        if rfq_id is not None:
            stmt = stmt.where(QuotationResponseModel.rfq_id == rfq_id)
        counts = Counter({status.value: 0 for status in ResponseProcessingStatus})
        for status, count in self._session.execute(stmt):
            counts[status] = count
        return dict(counts)

    # =========================================================================
    # Review queue
    # =========================================================================

    def list_pending_responses(
        self, actor: Actor, rfq_id: UUID | None = None,
    ) -> list[QuotationResponse]:
        """Responses awaiting review, oldest first."""
        stmt = (
            select(QuotationResponseModel)
            .where(QuotationResponseModel.company_id == actor.company_id)
            .where(
                QuotationResponseModel.processing_status.in_(self._config.pending_review_statuses)
            )
        )
        if rfq_id is not None:
            stmt = stmt.where(QuotationResponseModel.rfq_id == rfq_id)
        stmt = stmt.order_by(
            QuotationResponseModel.received_at,
            QuotationResponseModel.created_at,
            QuotationResponseModel.id,
        )
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    def mark_response_reviewed(self, actor: Actor, response_id: UUID) -> QuotationResponse:
        self._policy.require(actor, RESPONSE_WORKFLOW.name, "review")
        now = self._clock.now()
        with LogContext.bind(actor_id=actor.actor_id, entity_id=response_id):
            with UnitOfWork(self._session, "mark_response_reviewed"):
                response = self._load_response(actor, response_id, for_update=True)
                transition = RESPONSE_WORKFLOW.require_transition(
                    "quotation_response", response.id, response.processing_status, "review",
                )
                response.processing_status = transition.to_state
                response.reviewed_by = actor.actor_id
                response.reviewed_at = now
                response.updated_by_id = actor.actor_id
                dto = response.to_dto()
        logger.info("quotation_response_reviewed", extra={"response_id": str(response_id)})
        return dto

    def get_response(self, actor: Actor, response_id: UUID) -> QuotationResponse:
        return self._load_response(actor, response_id).to_dto()

    def duplicate_statistics(self, actor: Actor) -> DuplicateStatistics:
        stats = duplicate_statistics(records=self._load_records(actor.company_id, None))
        self._session.rollback()
        return stats

    def _load_response(
        self, actor: Actor, response_id: UUID, for_update: bool = False,
    ) -> QuotationResponseModel:
        stmt = (
            select(QuotationResponseModel)
            .where(QuotationResponseModel.id == response_id)
            .where(QuotationResponseModel.company_id == actor.company_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        response = self._session.execute(stmt).scalar_one_or_none()
        if response is None:
            raise NotFoundError("quotation_response", str(response_id))
        return response
