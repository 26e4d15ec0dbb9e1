"""
RFQ Configuration Schema.

Numbering, default terms, and the reminder policy for requests for
quotation.
"""

from dataclasses import dataclass
from typing import Self

from sourcing_kernel.logging_config import get_logger
from sourcing_kernel.services.sequence_service import RFQ_SERIES, NumberSeries

logger = get_logger("modules.rfq.config")


@dataclass
class RFQConfig:
    """
    Configuration schema for the RFQ module.

        config = RFQConfig(max_reminders=2, reminder_interval_days=5)
    """

    # Numbering: RFQ-YYYY-NNNN
    number_prefix: str = RFQ_SERIES.prefix
    number_width: int = RFQ_SERIES.width

    # Quotation validity requested from vendors when the RFQ does not say
    default_validity_days: int = 30

    # Reminders
    max_reminders: int = 3
    reminder_interval_days: int = 3

    # Outbound mail
    subject_template: str = "Request for Quotation {rfq_number}"
    reminder_subject_template: str = "Reminder: Request for Quotation {rfq_number}"
    reply_to_address: str | None = None

    def __post_init__(self):
        if self.max_reminders < 0:
            raise ValueError("max_reminders cannot be negative")
        if self.reminder_interval_days < 0:
            raise ValueError("reminder_interval_days cannot be negative")
        if self.default_validity_days < 1:
            raise ValueError("default_validity_days must be at least 1")
        logger.info(
            "rfq_config_initialized",
            extra={
                "number_prefix": self.number_prefix,
                "max_reminders": self.max_reminders,
                "reminder_interval_days": self.reminder_interval_days,
                "default_validity_days": self.default_validity_days,
            },
        )

    @property
    def number_series(self) -> NumberSeries:
        return RFQ_SERIES.with_overrides(prefix=self.number_prefix, width=self.number_width)

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g., loaded from YAML)."""
        logger.info(
            "rfq_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
