"""
Module: sourcing_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the "Q" side of the CQRS-lite pattern, providing company-scoped read
    access without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/.  MUST NOT
    import from services/ or outer layers.

Invariants enforced:
    - Read-only access: Selectors MUST NOT call session.add(), session.delete(),
      session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, NOT ORM
      instances.
    - Company scope: rows of another company are indistinguishable from rows
      that do not exist.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from sourcing_kernel.db.base import Base
from sourcing_kernel.exceptions import NotFoundError

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session

    def _get_scoped(
        self,
        model: type[ModelType],
        entity_id: UUID,
        company_id: UUID,
        entity_type: str,
    ) -> ModelType:
        """Load one row of ``company_id`` or raise NotFoundError."""
        row = self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .where(model.company_id == company_id)
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(entity_type, str(entity_id))
        return row
