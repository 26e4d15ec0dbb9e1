"""
RFQ Module (``sourcing_modules.rfq``).

Responsibility
--------------
Requests for quotation: creation, vendor invitations, outbound email with
per-vendor outcomes, reminders, and the lifecycle up to award.  Also
declares the external collaborator Protocols (``gateways``) shared with
the quotation module.
"""

from sourcing_modules.rfq.config import RFQConfig
from sourcing_modules.rfq.gateways import (
    InboundMessage,
    InboxReader,
    MailSender,
    OutboundMessage,
    QuotationExtractor,
    SendReceipt,
    VendorContact,
    VendorDirectory,
)
from sourcing_modules.rfq.models import (
    RFQ,
    DispatchReport,
    EmailDispatchEntry,
    ReminderReport,
    RFQLine,
    RFQLineInput,
    RFQStatus,
    RFQTerms,
    VendorDispatchResult,
    VendorInvitation,
)
from sourcing_modules.rfq.service import RFQService
from sourcing_modules.rfq.workflows import RFQ_WORKFLOW

__all__ = [
    "RFQ",
    "RFQConfig",
    "RFQLine",
    "RFQLineInput",
    "RFQService",
    "RFQStatus",
    "RFQTerms",
    "RFQ_WORKFLOW",
    "DispatchReport",
    "EmailDispatchEntry",
    "ReminderReport",
    "VendorDispatchResult",
    "VendorInvitation",
    "InboundMessage",
    "InboxReader",
    "MailSender",
    "OutboundMessage",
    "QuotationExtractor",
    "SendReceipt",
    "VendorContact",
    "VendorDirectory",
]
