"""
Requisition Configuration Schema.

Defines the structure and sensible defaults for requisition settings.
Actual values are loaded from ``config/sourcing.yaml`` at runtime.
"""

from dataclasses import dataclass
from typing import Self

from sourcing_kernel.logging_config import get_logger
from sourcing_kernel.services.sequence_service import PR_SERIES, NumberSeries

logger = get_logger("modules.requisition.config")


@dataclass
class RequisitionConfig:
    """
    Configuration schema for the requisition module.

    Override at instantiation with company-specific values:

        config = RequisitionConfig(number_prefix="PRQ", max_lines=50)
    """

    # Numbering: PR-YYYYMM-NNNN
    number_prefix: str = PR_SERIES.prefix
    number_width: int = PR_SERIES.width

    default_priority: str = "normal"

    # Upper bound on lines per requisition (0 = unlimited)
    max_lines: int = 0

    def __post_init__(self):
        if self.number_width < 1:
            raise ValueError("number_width must be at least 1")
        if self.max_lines < 0:
            raise ValueError("max_lines cannot be negative")
        logger.info(
            "requisition_config_initialized",
            extra={
                "number_prefix": self.number_prefix,
                "number_width": self.number_width,
                "default_priority": self.default_priority,
                "max_lines": self.max_lines,
            },
        )

    @property
    def number_series(self) -> NumberSeries:
        return PR_SERIES.with_overrides(prefix=self.number_prefix, width=self.number_width)

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g., loaded from YAML)."""
        logger.info(
            "requisition_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
