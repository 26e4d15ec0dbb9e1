"""
Module: sourcing_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for sourcing_modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import sourcing_kernel value helpers and sibling engines.
    MUST NOT import sourcing_modules.

Invariants enforced:
    - Purity: engines never read the clock; timestamps are passed in.
    - Decimal-only arithmetic for prices and totals.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are wrapped in ``@traced_engine`` and emit
    SOURCING_ENGINE_TRACE records with the engine name, version, input
    fingerprint and duration.

Usage:
    from sourcing_engines.comparison import ComparisonEngine
    from sourcing_engines.deduplication import plan_deduplication
    from sourcing_engines.classification import classify_email
    from sourcing_engines.extraction import extract_quotation
"""

from sourcing_kernel.logging_config import get_logger

logger = get_logger("engines")

from sourcing_engines.classification import (
    Classification,
    EmailCategory,
    classify_email,
    find_rfq_number,
    parse_sender,
)
from sourcing_engines.comparison import (
    ELIGIBLE_STATUSES,
    ComparisonEngine,
    ItemComparison,
    ItemQuote,
    QuotedLine,
    RFQComparison,
    RFQItem,
    VendorQuotation,
    VendorRanking,
)
from sourcing_engines.deduplication import (
    DedupKey,
    DedupPlan,
    DuplicateGroup,
    DuplicateStatistics,
    ResponseRecord,
    duplicate_statistics,
    plan_deduplication,
)
from sourcing_engines.extraction import (
    ExtractedLine,
    ExtractedQuotation,
    extract_quotation,
)
from sourcing_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Classification
    "Classification",
    "EmailCategory",
    "classify_email",
    "find_rfq_number",
    "parse_sender",
    # Comparison
    "ELIGIBLE_STATUSES",
    "ComparisonEngine",
    "ItemComparison",
    "ItemQuote",
    "QuotedLine",
    "RFQComparison",
    "RFQItem",
    "VendorQuotation",
    "VendorRanking",
    # Deduplication
    "DedupKey",
    "DedupPlan",
    "DuplicateGroup",
    "DuplicateStatistics",
    "ResponseRecord",
    "duplicate_statistics",
    "plan_deduplication",
    # Extraction
    "ExtractedLine",
    "ExtractedQuotation",
    "extract_quotation",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]
