"""
External collaborators of the sourcing workflow.

Vendor master data, outbound mail, the inbound mailbox and the optional
AI extractor live outside this system.  Services depend on these
Protocols only; concrete adapters are injected by the caller.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from sourcing_engines.comparison import RFQItem
from sourcing_engines.extraction import ExtractedQuotation


@dataclass(frozen=True)
class VendorContact:
    vendor_id: UUID
    company_id: UUID
    name: str
    email: str | None = None
    rating: Decimal | None = None


@dataclass(frozen=True)
class OutboundMessage:
    to: str
    subject: str
    body: str
    cc: tuple[str, ...] = ()
    reply_to: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SendReceipt:
    message_id: str


@dataclass(frozen=True)
class InboundMessage:
    """A message as read from the purchase mailbox."""
    external_message_id: str
    from_address: str
    subject: str
    received_at: datetime
    body: str = ""
    attachments: tuple[dict, ...] = ()


@runtime_checkable
class VendorDirectory(Protocol):
    def get_vendor(self, company_id: UUID, vendor_id: UUID) -> VendorContact | None: ...

    def find_vendor_by_email(self, company_id: UUID, email: str) -> VendorContact | None: ...


@runtime_checkable
class MailSender(Protocol):
    def send(self, message: OutboundMessage) -> SendReceipt:
        """Deliver one message.  Raises MailDeliveryError on failure."""
        ...


@runtime_checkable
class InboxReader(Protocol):
    def fetch_messages(self, account: str) -> Sequence[InboundMessage]: ...


@runtime_checkable
class QuotationExtractor(Protocol):
    def extract(
        self, message: InboundMessage, rfq_items: Sequence[RFQItem],
    ) -> ExtractedQuotation:
        """Read a quotation from a message.  Raises ExtractionError when it cannot."""
        ...
