"""
Quotation Configuration Schema.

Numbering, validity defaults, acknowledgment mail and the review queue for
vendor quotations.
"""

from dataclasses import dataclass, field
from typing import Self

from sourcing_kernel.logging_config import get_logger
from sourcing_kernel.services.sequence_service import QUOTATION_SERIES, NumberSeries

logger = get_logger("modules.quotation.config")

_RESPONSE_STATUSES = frozenset({"pending_review", "reviewed", "failed"})


@dataclass
class QuotationConfig:
    """
    Configuration schema for the quotation module.

        config = QuotationConfig(send_acknowledgment=False)
    """

    # Numbering: QT-YYYY-NNNN
    number_prefix: str = QUOTATION_SERIES.prefix
    number_width: int = QUOTATION_SERIES.width

    # Used when a reply does not state how long its prices hold
    default_validity_days: int = 30

    # Statuses listed by list_pending_responses
    pending_review_statuses: tuple[str, ...] = field(
        default_factory=lambda: ("pending_review",)
    )

    # Acknowledgment of received quotations
    send_acknowledgment: bool = True
    acknowledgment_subject_template: str = "Quotation received: {rfq_number}"

    # Mailbox read by process_inbox when the caller names none
    inbox_account: str = "purchase"

    def __post_init__(self):
        self.pending_review_statuses = tuple(self.pending_review_statuses)
        if self.default_validity_days < 1:
            raise ValueError("default_validity_days must be at least 1")
        if not self.pending_review_statuses:
            raise ValueError("pending_review_statuses cannot be empty")
        unknown = set(self.pending_review_statuses) - _RESPONSE_STATUSES
        if unknown:
            raise ValueError(f"Unknown response statuses: {sorted(unknown)}")
        logger.info(
            "quotation_config_initialized",
            extra={
                "number_prefix": self.number_prefix,
                "default_validity_days": self.default_validity_days,
                "pending_review_statuses": list(self.pending_review_statuses),
                "send_acknowledgment": self.send_acknowledgment,
            },
        )

    @property
    def number_series(self) -> NumberSeries:
        return QUOTATION_SERIES.with_overrides(prefix=self.number_prefix, width=self.number_width)

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g., loaded from YAML)."""
        logger.info(
            "quotation_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
