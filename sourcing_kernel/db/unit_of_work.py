"""
Module: sourcing_kernel.db.unit_of_work
Responsibility: Explicit transaction boundary for service operations.
Architecture position: Kernel > DB.  Used by every service method that mutates
    more than one row.

Invariants enforced:
    - All-or-nothing: on normal exit the session is committed; on ANY
      exception it is rolled back and the exception is re-raised unchanged.
    - A UnitOfWork never nests.  Entering one while another is active on the
      same session raises RuntimeError, because an inner commit would
      publish half of the outer operation.

Usage:
    with UnitOfWork(self._session, "submit_requisition", requisition_id=pr_id):
        pr = self._load_for_update(pr_id)
        pr.status = RequisitionStatus.SUBMITTED.value
"""

from typing import Any

from sqlalchemy.orm import Session

from sourcing_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")

_ACTIVE_KEY = "sourcing_unit_of_work_active"


class UnitOfWork:
    """Commit on success, roll back and re-raise on any exception."""

    def __init__(self, session: Session, operation: str, **log_fields: Any):
        self._session = session
        self._operation = operation
        self._log_fields = log_fields

    def __enter__(self) -> Session:
        if self._session.info.get(_ACTIVE_KEY):
            raise RuntimeError(
                f"UnitOfWork '{self._operation}' entered while another is active"
            )
        self._session.info[_ACTIVE_KEY] = True
        logger.debug(
            "transaction_started",
            extra={"operation": self._operation, **self._log_fields},
        )
        return self._session

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is None:
                self._session.commit()
                logger.debug(
                    "transaction_committed",
                    extra={"operation": self._operation, **self._log_fields},
                )
            else:
                self._session.rollback()
                logger.info(
                    "transaction_rolled_back",
                    extra={
                        "operation": self._operation,
                        "error_type": exc_type.__name__,
                        **self._log_fields,
                    },
                )
        except Exception:
            self._session.rollback()
            logger.warning(
                "transaction_commit_failed",
                extra={"operation": self._operation, **self._log_fields},
                exc_info=True,
            )
            raise
        finally:
            self._session.info.pop(_ACTIVE_KEY, None)
        return False
