"""
Tests for RFQService.

Validates:
- Direct creation (draft or published) and numbering
- Publish / close / cancel / award transitions and their guards
- Per-vendor email dispatch: partial failure, skip of already-emailed vendors
- Resend counts as a reminder
- Reminder sweep: overdue selection, interval and maximum
- Email history is append-only and ordered
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from sourcing_kernel.exceptions import (
    AuthorizationError,
    NotFoundError,
    SourcingError,
    StateTransitionError,
    ValidationError,
)
from sourcing_modules.rfq.config import RFQConfig
from sourcing_modules.rfq.gateways import VendorContact
from sourcing_modules.rfq.models import (
    DispatchDirection,
    DispatchStatus,
    EmailType,
    RFQLineInput,
    RFQStatus,
    RFQTerms,
)
from sourcing_modules.rfq.service import RFQService


def _rfq_lines():
    return [
        RFQLineInput(
            item_code="MAT-050",
            item_description="Bearing 6205 ZZ",
            quantity=Decimal("40"),
            unit="NOS",
        ),
    ]


# =============================================================================
# Creation and lifecycle
# =============================================================================


class TestCreateRFQ:

    def test_creates_draft(self, rfq_service, buyer, vendors, deadline):
        rfq = rfq_service.create_rfq(
            buyer, _rfq_lines(), [vendors["acme"].vendor_id], deadline,
        )
        assert rfq.rfq_number == "RFQ-2025-0001"
        assert rfq.status is RFQStatus.DRAFT
        assert rfq.requisition_id is None
        assert rfq.validity_days == 30
        assert rfq.lines[0].item_code == "MAT-050"

    def test_publish_on_create(self, rfq_service, buyer, vendors, deadline):
        rfq = rfq_service.create_rfq(
            buyer, _rfq_lines(), [vendors["acme"].vendor_id], deadline, publish=True,
        )
        assert rfq.status is RFQStatus.OPEN

    def test_numbering_shared_with_conversion(self, rfq_service, buyer, open_rfq, vendors, deadline):
        rfq = rfq_service.create_rfq(buyer, _rfq_lines(), [vendors["acme"].vendor_id], deadline)
        assert (open_rfq.rfq_number, rfq.rfq_number) == ("RFQ-2025-0001", "RFQ-2025-0002")

    def test_terms_are_stored(self, rfq_service, buyer, vendors, deadline, today):
        terms = RFQTerms(
            payment_terms="50% advance",
            delivery_terms="Ex works",
            special_instructions="Quote in INR",
            expected_delivery_date=today + timedelta(days=30),
            validity_days=60,
        )
        rfq = rfq_service.create_rfq(buyer, _rfq_lines(), [vendors["acme"].vendor_id], deadline, terms=terms)
        assert rfq.payment_terms == "50% advance"
        assert rfq.delivery_terms == "Ex works"
        assert rfq.special_instructions == "Quote in INR"
        assert rfq.expected_delivery_date == today + timedelta(days=30)
        assert rfq.validity_days == 60

    def test_requires_vendors(self, rfq_service, buyer, deadline):
        with pytest.raises(ValidationError) as exc_info:
            rfq_service.create_rfq(buyer, _rfq_lines(), [], deadline)
        assert exc_info.value.field == "vendor_ids"

    def test_requires_items(self, rfq_service, buyer, vendors, deadline):
        with pytest.raises(ValidationError) as exc_info:
            rfq_service.create_rfq(buyer, [], [vendors["acme"].vendor_id], deadline)
        assert exc_info.value.field == "items"

    def test_requester_cannot_create(self, rfq_service, requester, vendors, deadline):
        with pytest.raises(AuthorizationError):
            rfq_service.create_rfq(requester, _rfq_lines(), [vendors["acme"].vendor_id], deadline)


class TestLifecycle:

    def test_publish_draft(self, rfq_service, buyer, vendors, deadline):
        rfq = rfq_service.create_rfq(buyer, _rfq_lines(), [vendors["acme"].vendor_id], deadline)
        assert rfq_service.publish_rfq(buyer, rfq.id).status is RFQStatus.OPEN

    def test_publish_open_rejected(self, rfq_service, buyer, open_rfq):
        with pytest.raises(StateTransitionError):
            rfq_service.publish_rfq(buyer, open_rfq.id)

    def test_cancel_requires_reason(self, rfq_service, buyer, open_rfq):
        with pytest.raises(ValidationError) as exc_info:
            rfq_service.cancel_rfq(buyer, open_rfq.id, "  ")
        assert exc_info.value.field == "reason"
        assert rfq_service.get_rfq(buyer, open_rfq.id).status is RFQStatus.OPEN

    def test_cancel_open(self, rfq_service, buyer, open_rfq, clock):
        rfq = rfq_service.cancel_rfq(buyer, open_rfq.id, "Requirement dropped")
        assert rfq.status is RFQStatus.CANCELLED
        assert rfq.cancellation_reason == "Requirement dropped"
        assert rfq.cancelled_at == clock.now()

    def test_cancelled_is_terminal(self, rfq_service, buyer, open_rfq):
        rfq_service.cancel_rfq(buyer, open_rfq.id, "Requirement dropped")
        with pytest.raises(StateTransitionError):
            rfq_service.publish_rfq(buyer, open_rfq.id)

    def test_close_needs_sent(self, rfq_service, buyer, open_rfq):
        with pytest.raises(StateTransitionError):
            rfq_service.close_rfq(buyer, open_rfq.id)

    def test_close_then_award(self, rfq_service, buyer, manager, open_rfq):
        rfq_service.send_rfq(buyer, open_rfq.id)
        closed = rfq_service.close_rfq(buyer, open_rfq.id)
        assert closed.status is RFQStatus.CLOSED
        awarded = rfq_service.award_rfq(manager, open_rfq.id)
        assert awarded.status is RFQStatus.AWARDED
        assert awarded.awarded_at is not None

    def test_buyer_cannot_award(self, rfq_service, buyer, open_rfq):
        rfq_service.send_rfq(buyer, open_rfq.id)
        rfq_service.close_rfq(buyer, open_rfq.id)
        with pytest.raises(AuthorizationError):
            rfq_service.award_rfq(buyer, open_rfq.id)

    def test_closed_cannot_be_cancelled(self, rfq_service, buyer, open_rfq):
        rfq_service.send_rfq(buyer, open_rfq.id)
        rfq_service.close_rfq(buyer, open_rfq.id)
        with pytest.raises(StateTransitionError):
            rfq_service.cancel_rfq(buyer, open_rfq.id, "changed our mind")

    @pytest.mark.parametrize("reason", ["", "   "])
    def test_cancel_awarded_without_reason_is_state_error(self, rfq_service, buyer, manager, open_rfq, reason):
        rfq_service.send_rfq(buyer, open_rfq.id)
        rfq_service.close_rfq(buyer, open_rfq.id)
        rfq_service.award_rfq(manager, open_rfq.id)
        with pytest.raises(StateTransitionError) as exc_info:
            rfq_service.cancel_rfq(buyer, open_rfq.id, reason)
        assert exc_info.value.current_state == "awarded"
        assert rfq_service.get_rfq(buyer, open_rfq.id).status is RFQStatus.AWARDED

    def test_other_company(self, rfq_service, open_rfq, outsider):
        with pytest.raises(NotFoundError):
            rfq_service.get_rfq(outsider, open_rfq.id)
        assert rfq_service.list_rfqs(outsider) == []

    def test_list_by_status(self, rfq_service, buyer, open_rfq, vendors, deadline):
        draft = rfq_service.create_rfq(buyer, _rfq_lines(), [vendors["acme"].vendor_id], deadline)
        assert [r.id for r in rfq_service.list_rfqs(buyer, status="draft")] == [draft.id]
        assert [r.rfq_number for r in rfq_service.list_rfqs(buyer)] == ["RFQ-2025-0001", "RFQ-2025-0002"]


def _drive_rfq_to(state, rfq_service, buyer, manager, rfq_id):
    """Walk an open RFQ forward to ``state``."""
    if state == "cancelled":
        rfq_service.cancel_rfq(buyer, rfq_id, "Requirement dropped")
        return
    if state == "open":
        return
    rfq_service.send_rfq(buyer, rfq_id)
    if state == "sent":
        return
    rfq_service.close_rfq(buyer, rfq_id)
    if state == "awarded":
        rfq_service.award_rfq(manager, rfq_id)


class TestIllegalTransitions:
    """Every refused (state, action) pair leaves the RFQ exactly as it was."""

    @pytest.mark.parametrize(
        "state, action",
        [
            ("open", "publish"),
            ("open", "close"),
            ("open", "award"),
            ("sent", "publish"),
            ("sent", "award"),
            ("closed", "publish"),
            ("closed", "close"),
            ("closed", "cancel"),
            ("cancelled", "publish"),
            ("cancelled", "close"),
            ("cancelled", "cancel"),
            ("cancelled", "award"),
            ("awarded", "publish"),
            ("awarded", "close"),
            ("awarded", "cancel"),
            ("awarded", "award"),
        ],
    )
    def test_refused_action_changes_nothing(self, rfq_service, buyer, manager, open_rfq, state, action):
        _drive_rfq_to(state, rfq_service, buyer, manager, open_rfq.id)
        before = rfq_service.get_rfq(buyer, open_rfq.id)
        assert before.status.value == state

        attempts = {
            "publish": lambda: rfq_service.publish_rfq(buyer, open_rfq.id),
            "close": lambda: rfq_service.close_rfq(buyer, open_rfq.id),
            "cancel": lambda: rfq_service.cancel_rfq(buyer, open_rfq.id, "Budget withdrawn"),
            "award": lambda: rfq_service.award_rfq(manager, open_rfq.id),
        }
        with pytest.raises(StateTransitionError) as exc_info:
            attempts[action]()
        assert exc_info.value.current_state == state
        assert exc_info.value.action == action

        assert rfq_service.get_rfq(buyer, open_rfq.id) == before


# =============================================================================
# Dispatch
# =============================================================================


class TestSendRFQ:

    def test_emails_every_vendor(self, rfq_service, buyer, open_rfq, vendors, mail_sender, clock):
        report = rfq_service.send_rfq(buyer, open_rfq.id)

        assert report.email_type is EmailType.RFQ_SENT
        assert report.sent_count == 3
        assert report.failed_count == 0
        assert sorted(m.to for m in mail_sender.sent) == [
            "sales@acme.example", "sales@bolt.example", "sales@crest.example",
        ]
        message = mail_sender.sent_to("sales@acme.example")[0]
        assert message.subject == "Request for Quotation RFQ-2025-0001"
        assert message.headers["X-RFQ-Number"] == "RFQ-2025-0001"
        assert "Dear Acme Industrial Supplies," in message.body
        assert "MAT-001 - Hex bolt M12 x 50, zinc plated: 100 NOS" in message.body

        rfq = rfq_service.get_rfq(buyer, open_rfq.id)
        assert rfq.status is RFQStatus.SENT
        assert rfq.sent_at == clock.now()
        assert all(inv.email_sent for inv in rfq.invitations)

    def test_partial_failure(self, rfq_service, buyer, open_rfq, vendors, mail_sender):
        mail_sender.failing.add("sales@bolt.example")
        report = rfq_service.send_rfq(buyer, open_rfq.id)

        assert report.sent_count == 2
        (failure,) = report.failures
        assert failure.vendor_id == vendors["bolt"].vendor_id
        assert failure.error == "mailbox unavailable"
        assert failure.email_address == "sales@bolt.example"

        rfq = rfq_service.get_rfq(buyer, open_rfq.id)
        assert rfq.status is RFQStatus.SENT
        assert not rfq.invitation_for(vendors["bolt"].vendor_id).email_sent

        history = rfq_service.get_email_history(buyer, open_rfq.id)
        failed = [e for e in history if e.status is DispatchStatus.FAILED]
        assert [(e.vendor_id, e.error) for e in failed] == [
            (vendors["bolt"].vendor_id, "mailbox unavailable"),
        ]

    def test_all_failed_stays_open(self, rfq_service, buyer, open_rfq, mail_sender):
        mail_sender.failing.update({"sales@acme.example", "sales@bolt.example", "sales@crest.example"})
        report = rfq_service.send_rfq(buyer, open_rfq.id)
        assert report.sent_count == 0
        assert report.failed_count == 3
        assert rfq_service.get_rfq(buyer, open_rfq.id).status is RFQStatus.OPEN
        assert len(rfq_service.get_email_history(buyer, open_rfq.id)) == 3

    def test_second_send_reaches_only_pending(self, rfq_service, buyer, open_rfq, vendors, mail_sender):
        mail_sender.failing.add("sales@bolt.example")
        rfq_service.send_rfq(buyer, open_rfq.id)
        mail_sender.failing.clear()

        report = rfq_service.send_rfq(buyer, open_rfq.id)
        assert [r.vendor_id for r in report.results] == [vendors["bolt"].vendor_id]
        assert report.sent_count == 1
        assert len(mail_sender.sent_to("sales@acme.example")) == 1

    def test_send_when_everyone_emailed(self, rfq_service, buyer, open_rfq):
        rfq_service.send_rfq(buyer, open_rfq.id)
        with pytest.raises(StateTransitionError, match="already emailed"):
            rfq_service.send_rfq(buyer, open_rfq.id)

    def test_vendor_without_address(self, rfq_service, buyer, open_rfq, vendors, vendor_directory):
        crest = vendors["crest"]
        vendor_directory.add(
            VendorContact(vendor_id=crest.vendor_id, company_id=crest.company_id, name=crest.name, email=None)
        )
        report = rfq_service.send_rfq(buyer, open_rfq.id)
        (failure,) = report.failures
        assert failure.vendor_id == crest.vendor_id
        assert failure.error == "vendor has no email address"

    def test_narrowed_recipients(self, rfq_service, buyer, open_rfq, vendors, mail_sender):
        report = rfq_service.send_rfq(buyer, open_rfq.id, vendor_ids=[vendors["acme"].vendor_id])
        assert report.sent_count == 1
        assert [m.to for m in mail_sender.sent] == ["sales@acme.example"]

    def test_uninvited_vendor_rejected(self, rfq_service, buyer, open_rfq, mail_sender):
        with pytest.raises(ValidationError) as exc_info:
            rfq_service.send_rfq(buyer, open_rfq.id, vendor_ids=[uuid4()])
        assert exc_info.value.field == "vendor_ids"
        assert mail_sender.sent == []

    def test_custom_subject_body_cc(self, rfq_service, buyer, open_rfq, mail_sender):
        rfq_service.send_rfq(
            buyer, open_rfq.id, subject="Urgent enquiry", body="Please quote.", cc=["stores@plant.example"],
        )
        message = mail_sender.sent[0]
        assert message.subject == "Urgent enquiry"
        assert message.body == "Please quote."
        assert message.cc == ("stores@plant.example",)

    def test_draft_cannot_be_sent(self, rfq_service, buyer, vendors, deadline, mail_sender):
        rfq = rfq_service.create_rfq(buyer, _rfq_lines(), [vendors["acme"].vendor_id], deadline)
        with pytest.raises(StateTransitionError):
            rfq_service.send_rfq(buyer, rfq.id)
        assert mail_sender.sent == []

    def test_needs_mail_collaborators(self, session, clock, buyer, open_rfq):
        service = RFQService(session, clock=clock)
        with pytest.raises(SourcingError):
            service.send_rfq(buyer, open_rfq.id)

    def test_history_rows(self, rfq_service, buyer, open_rfq, vendors):
        rfq_service.send_rfq(buyer, open_rfq.id)
        history = rfq_service.get_email_history(buyer, open_rfq.id)
        assert len(history) == 3
        for entry in history:
            assert entry.direction is DispatchDirection.OUTBOUND
            assert entry.email_type is EmailType.RFQ_SENT
            assert entry.status is DispatchStatus.SENT
            assert entry.external_message_id.startswith("<out-")


class TestResend:

    def test_resend_counts_as_reminder(self, rfq_service, buyer, open_rfq, vendors, mail_sender, clock):
        rfq_service.send_rfq(buyer, open_rfq.id)
        clock.advance(days=1)
        report = rfq_service.resend_rfq(buyer, open_rfq.id, [vendors["acme"].vendor_id])

        assert report.email_type is EmailType.REMINDER_SENT
        assert report.sent_count == 1
        assert mail_sender.sent[-1].subject == "Reminder: Request for Quotation RFQ-2025-0001"
        inv = rfq_service.get_rfq(buyer, open_rfq.id).invitation_for(vendors["acme"].vendor_id)
        assert inv.reminder_count == 1
        assert inv.last_reminder_at == clock.now()

    def test_resend_needs_sent_rfq(self, rfq_service, buyer, open_rfq, vendors):
        with pytest.raises(StateTransitionError):
            rfq_service.resend_rfq(buyer, open_rfq.id, [vendors["acme"].vendor_id])

    def test_resend_needs_vendors(self, rfq_service, buyer, open_rfq):
        rfq_service.send_rfq(buyer, open_rfq.id)
        with pytest.raises(ValidationError) as exc_info:
            rfq_service.resend_rfq(buyer, open_rfq.id, [])
        assert exc_info.value.field == "vendor_ids"

    def test_resend_without_vendors_on_unsent_rfq_is_state_error(self, rfq_service, buyer, open_rfq):
        with pytest.raises(StateTransitionError) as exc_info:
            rfq_service.resend_rfq(buyer, open_rfq.id, [])
        assert exc_info.value.current_state == "open"


class TestReminders:

    def test_nothing_due_before_deadline(self, rfq_service, buyer, open_rfq, mail_sender):
        rfq_service.send_rfq(buyer, open_rfq.id)
        report = rfq_service.send_reminders(buyer)
        assert report.rfqs_checked == 0
        assert report.reminders_sent == 0

    def test_overdue_vendors_are_reminded(self, rfq_service, buyer, open_rfq, mail_sender, clock):
        rfq_service.send_rfq(buyer, open_rfq.id)
        clock.advance(days=8)

        report = rfq_service.send_reminders(buyer)
        assert report.rfqs_checked == 1
        assert report.reminders_sent == 3
        reminders = [m for m in mail_sender.sent if m.subject.startswith("Reminder:")]
        assert len(reminders) == 3
        assert "not yet received your quotation" in reminders[0].body

    def test_interval_between_reminders(self, rfq_service, buyer, open_rfq, clock):
        rfq_service.send_rfq(buyer, open_rfq.id)
        clock.advance(days=8)
        rfq_service.send_reminders(buyer)

        clock.advance(days=2)
        assert rfq_service.send_reminders(buyer).reminders_sent == 0
        clock.advance(days=1)
        assert rfq_service.send_reminders(buyer).reminders_sent == 3

    def test_maximum_reminders(self, rfq_service, buyer, open_rfq, clock, vendors):
        rfq_service.send_rfq(buyer, open_rfq.id)
        clock.advance(days=8)
        for _ in range(5):
            rfq_service.send_reminders(buyer)
            clock.advance(days=3)

        rfq = rfq_service.get_rfq(buyer, open_rfq.id)
        assert {inv.reminder_count for inv in rfq.invitations} == {3}

    def test_never_emailed_vendor_not_reminded(self, rfq_service, buyer, open_rfq, mail_sender, clock, vendors):
        mail_sender.failing.add("sales@crest.example")
        rfq_service.send_rfq(buyer, open_rfq.id)
        mail_sender.failing.clear()
        clock.advance(days=8)

        report = rfq_service.send_reminders(buyer)
        reminded = {r.vendor_id for rep in report.reports for r in rep.results}
        assert vendors["crest"].vendor_id not in reminded
        assert report.reminders_sent == 2

    def test_configured_limits(self, session, clock, buyer, open_rfq, mail_sender, vendor_directory):
        service = RFQService(
            session,
            clock=clock,
            config=RFQConfig(max_reminders=1, reminder_interval_days=1),
            mail_sender=mail_sender,
            vendor_directory=vendor_directory,
        )
        service.send_rfq(buyer, open_rfq.id)
        clock.advance(days=8)
        assert service.send_reminders(buyer).reminders_sent == 3
        clock.advance(days=1)
        assert service.send_reminders(buyer).reminders_sent == 0
