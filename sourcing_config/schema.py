"""
SourcingSettings schema.

The human-authored, reviewable settings of a sourcing deployment: where
the database lives, how logging is shaped, and the tunables of each
module.  YAML files are parsed into these types by the loader.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sourcing_modules.quotation.config import QuotationConfig
from sourcing_modules.requisition.config import RequisitionConfig
from sourcing_modules.rfq.config import RFQConfig

# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///sourcing.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    sqlite_busy_timeout: float = 30.0


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourcingSettings:
    """
    Complete settings for one deployment.

    ``checksum`` identifies the source document; it is empty for settings
    built in code.
    """

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    requisition: RequisitionConfig = field(default_factory=RequisitionConfig.with_defaults)
    rfq: RFQConfig = field(default_factory=RFQConfig.with_defaults)
    quotation: QuotationConfig = field(default_factory=QuotationConfig.with_defaults)
    checksum: str = ""
