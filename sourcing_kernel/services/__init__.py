"""Kernel services - imperative shell infrastructure."""

from sourcing_kernel.services.sequence_service import (
    PR_SERIES,
    QUOTATION_SERIES,
    RFQ_SERIES,
    DocumentNumberService,
    NumberingLockModel,
    NumberSeries,
    bucket_key_for,
)

__all__ = [
    "DocumentNumberService",
    "NumberingLockModel",
    "NumberSeries",
    "PR_SERIES",
    "RFQ_SERIES",
    "QUOTATION_SERIES",
    "bucket_key_for",
]
