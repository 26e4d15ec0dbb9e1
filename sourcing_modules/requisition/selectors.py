"""Read-side queries for purchase requisitions."""

from uuid import UUID

from sqlalchemy import select

from sourcing_kernel.selectors.base import BaseSelector
from sourcing_modules.requisition.models import Requisition, RequisitionStatus
from sourcing_modules.requisition.orm import PurchaseRequisitionModel


class RequisitionSelector(BaseSelector[PurchaseRequisitionModel]):
    """Company-scoped requisition reads returning DTOs."""

    def get(self, company_id: UUID, requisition_id: UUID) -> Requisition:
        return self._get_scoped(
            PurchaseRequisitionModel, requisition_id, company_id, "purchase_requisition",
        ).to_dto()

    def list(
        self,
        company_id: UUID,
        status: RequisitionStatus | None = None,
        factory_id: UUID | None = None,
    ) -> list[Requisition]:
        stmt = select(PurchaseRequisitionModel).where(
            PurchaseRequisitionModel.company_id == company_id
        )
        if status is not None:
            stmt = stmt.where(PurchaseRequisitionModel.status == status.value)
        if factory_id is not None:
            stmt = stmt.where(PurchaseRequisitionModel.factory_id == factory_id)
        stmt = stmt.order_by(
            PurchaseRequisitionModel.request_date.desc(),
            PurchaseRequisitionModel.pr_number.desc(),
        )
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]
