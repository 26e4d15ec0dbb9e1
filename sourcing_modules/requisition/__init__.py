"""
Requisition Module (``sourcing_modules.requisition``).

Responsibility
--------------
Internal demand: purchase requisitions from draft through approval, and
their conversion into requests for quotation.

Architecture position
---------------------
**Modules layer** -- DTOs, ORM, workflow and config, plus
``RequisitionService``, which owns one transaction per operation and
delegates numbering to ``sourcing_kernel.services.sequence_service``.
"""

from sourcing_modules.requisition.config import RequisitionConfig
from sourcing_modules.requisition.models import (
    Requisition,
    RequisitionDecision,
    RequisitionLine,
    RequisitionLineInput,
    RequisitionPriority,
    RequisitionStatus,
)
from sourcing_modules.requisition.service import RequisitionService
from sourcing_modules.requisition.workflows import REQUISITION_WORKFLOW

__all__ = [
    "Requisition",
    "RequisitionConfig",
    "RequisitionDecision",
    "RequisitionLine",
    "RequisitionLineInput",
    "RequisitionPriority",
    "RequisitionService",
    "RequisitionStatus",
    "REQUISITION_WORKFLOW",
]
