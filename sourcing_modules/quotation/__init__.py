"""
Quotation Module (``sourcing_modules.quotation``).

Responsibility
--------------
Vendor replies and what is done with them: idempotent ingestion of
inbound email, the duplicate sweep, manual quotation entry and status
changes, and the side-by-side comparison with the buyer's vendor
selections.

Architecture position
---------------------
**Modules layer** -- three services over one set of ORM models:
``QuotationService``, ``ReconciliationService`` and ``ComparisonService``.
"""

from sourcing_modules.quotation.comparison import ComparisonService
from sourcing_modules.quotation.config import QuotationConfig
from sourcing_modules.quotation.models import (
    ComparisonDecision,
    DedupSweepSummary,
    GroupOutcome,
    InboxReport,
    IngestionAction,
    IngestionResult,
    Quotation,
    QuotationLineInput,
    QuotationResponse,
    QuotationStatus,
    ResponseProcessingStatus,
    VendorSelection,
)
from sourcing_modules.quotation.reconciliation import ReconciliationService
from sourcing_modules.quotation.service import QuotationService
from sourcing_modules.quotation.workflows import QUOTATION_WORKFLOW, RESPONSE_WORKFLOW

__all__ = [
    "ComparisonDecision",
    "ComparisonService",
    "DedupSweepSummary",
    "GroupOutcome",
    "InboxReport",
    "IngestionAction",
    "IngestionResult",
    "Quotation",
    "QuotationConfig",
    "QuotationLineInput",
    "QuotationResponse",
    "QuotationService",
    "QuotationStatus",
    "QUOTATION_WORKFLOW",
    "ReconciliationService",
    "ResponseProcessingStatus",
    "RESPONSE_WORKFLOW",
    "VendorSelection",
]
