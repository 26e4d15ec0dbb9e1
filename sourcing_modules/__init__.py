"""
Sourcing Modules.

Thin orchestration layers over the sourcing kernel and engines.
Each module contains:
- Domain models (the nouns)
- ORM models (persistence)
- Workflows (state machines)
- Configuration schemas
- Services (one transaction per operation)

Modules:
- Requisition: purchase requisitions, approval, conversion to RFQ
- RFQ: requests for quotation, vendor invitations, email dispatch
- Quotation: inbound replies, reconciliation, quotations, comparison
"""

from sourcing_modules import quotation, requisition, rfq

__all__ = ["requisition", "rfq", "quotation"]
