"""
DocumentNumberService -- human-readable document numbers without collisions.

Responsibility:
    Assigns numbers of the form ``PREFIX-BUCKET-NNNN`` (``PR-202501-0001``,
    ``RFQ-2025-0007``, ``QT-2025-0012``) scoped per company or factory.  The
    next number is one past the highest number already stored for the
    same prefix, bucket and scope; an empty bucket starts at 1.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by RequisitionService, RFQService and the quotation services
    INSIDE the transaction that inserts the numbered document.

Invariants enforced:
    - Serialized allocation: a lock row per (series, scope, bucket) is taken
      with ``SELECT ... FOR UPDATE`` before the highest number is read.
      Under SQLite the write lock taken at BEGIN IMMEDIATE gives the same
      serialization.
    - Backstop: every numbered table carries a unique constraint on
      (scope, number).  An IntegrityError at flush becomes ConflictError.
    - Transactional: a number is only visible after the caller's
      transaction commits.  Rollback returns it.

Failure modes:
    - IntegrityError on concurrent lock-row creation (handled via savepoint
      rollback and re-read).
    - ConflictError from ``flush_numbered`` when a number was taken by a
      writer that bypassed the lock.  The caller retries the WHOLE
      transaction; this service never retries internally.

Audit relevance:
    Allocation is logged at DEBUG level with series, scope and number.
"""

from dataclasses import dataclass, replace
from datetime import date
from uuid import UUID

from sqlalchemy import String, UniqueConstraint, column, func, select, table
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from sourcing_kernel.db.base import Base
from sourcing_kernel.exceptions import ConflictError
from sourcing_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


@dataclass(frozen=True)
class NumberSeries:
    """
    Definition of one document-number series.

    ``table_name``, ``number_column`` and ``scope_column`` locate the
    numbers already issued, so the kernel never imports module ORM classes.
    """
    name: str
    prefix: str
    bucket_format: str
    table_name: str
    number_column: str
    scope_column: str
    width: int = 4

    def with_overrides(self, prefix: str | None = None, width: int | None = None) -> "NumberSeries":
        return replace(
            self,
            prefix=prefix if prefix is not None else self.prefix,
            width=width if width is not None else self.width,
        )


PR_SERIES = NumberSeries(
    name="purchase_requisition",
    prefix="PR",
    bucket_format="%Y%m",
    table_name="purchase_requisitions",
    number_column="pr_number",
    scope_column="number_scope_id",
)

RFQ_SERIES = NumberSeries(
    name="rfq",
    prefix="RFQ",
    bucket_format="%Y",
    table_name="rfqs",
    number_column="rfq_number",
    scope_column="company_id",
)

QUOTATION_SERIES = NumberSeries(
    name="quotation",
    prefix="QT",
    bucket_format="%Y",
    table_name="quotations",
    number_column="quotation_number",
    scope_column="company_id",
)


class NumberingLockModel(Base):
    """
    Lock row per (series, scope, bucket).

    Holds no counter.  Its only job is to be locked so that concurrent
    allocations in the same bucket queue behind each other.
    """

    __tablename__ = "document_numbering_locks"
    __table_args__ = (
        UniqueConstraint("series", "scope_id", "bucket_key", name="uq_numbering_lock"),
    )

    series: Mapped[str] = mapped_column(String(50), nullable=False)
    scope_id: Mapped[UUID] = mapped_column(nullable=False)
    bucket_key: Mapped[str] = mapped_column(String(20), nullable=False)


def bucket_key_for(series: NumberSeries, on_date: date) -> str:
    """Derive the bucket key (``YYYYMM`` or ``YYYY``) for a date."""
    return on_date.strftime(series.bucket_format)


def format_number(series: NumberSeries, bucket_key: str, value: int) -> str:
    return f"{series.prefix}-{bucket_key}-{value:0{series.width}d}"


def parse_suffix(number: str, stem: str) -> int | None:
    """Trailing integer of ``number`` after ``stem``, or None if malformed."""
    if not number.startswith(stem):
        return None
    rest = number[len(stem):]
    if not rest.isdigit():
        return None
    return int(rest)


class DocumentNumberService:
    """
    Service for assigning document numbers.

    Contract:
        ``next_number`` must be called inside the caller's UnitOfWork, and the
        numbered row must be flushed in the same transaction (use
        ``flush_numbered``).

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT retry on ConflictError.

    Usage:
        with UnitOfWork(session, "create_requisition"):
            number = numbers.next_number(PR_SERIES, scope_id, "202501")
            session.add(PurchaseRequisitionModel(pr_number=number, ...))
            numbers.flush_numbered("purchase_requisition", number)
    """

    def __init__(self, session: Session):
        self._session = session

    def next_number(self, series: NumberSeries, scope_id: UUID, bucket_key: str) -> str:
        """
        Return the next unused number in ``series`` for ``scope_id`` and bucket.

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - The lock row for (series, scope, bucket) is held until the
              transaction completes.
            - Returns ``PREFIX-BUCKET-NNNN`` with NNNN one past the highest
              stored suffix (1 for an empty bucket).
        """
        self._lock_bucket(series, scope_id, bucket_key)

        stem = f"{series.prefix}-{bucket_key}-"
        numbers = table(
            series.table_name,
            column(series.number_column),
            column(series.scope_column),
        )
        number_col = numbers.c[series.number_column]
        stmt = (
            select(number_col)
            .where(numbers.c[series.scope_column] == str(scope_id))
            .where(number_col.startswith(stem, autoescape=True))
            .order_by(func.length(number_col).desc(), number_col.desc())
        )

        highest = 0
        for existing in self._session.execute(stmt).scalars():
            suffix = parse_suffix(existing, stem)
            if suffix is not None:
                highest = suffix
                break

        number = format_number(series, bucket_key, highest + 1)
        logger.debug(
            "document_number_allocated",
            extra={
                "series": series.name,
                "scope_id": str(scope_id),
                "bucket_key": bucket_key,
                "number": number,
            },
        )
        return number

    def flush_numbered(self, resource: str, number: str) -> None:
        """Flush pending inserts; a unique-number collision becomes ConflictError."""
        try:
            self._session.flush()
        except IntegrityError as exc:
            logger.warning(
                "document_number_conflict",
                extra={"resource": resource, "number": number},
            )
            raise ConflictError(resource=resource, key=number) from exc

    def _lock_bucket(self, series: NumberSeries, scope_id: UUID, bucket_key: str) -> None:
        stmt = (
            select(NumberingLockModel)
            .where(NumberingLockModel.series == series.name)
            .where(NumberingLockModel.scope_id == scope_id)
            .where(NumberingLockModel.bucket_key == bucket_key)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        lock = self._session.execute(stmt).scalar_one_or_none()
        if lock is not None:
            return

        # First allocation in this bucket; another writer may create the row
        # at the same moment, so create it under a savepoint.
        savepoint = self._session.begin_nested()
        try:
            self._session.add(
                NumberingLockModel(series=series.name, scope_id=scope_id, bucket_key=bucket_key)
            )
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            logger.debug(
                "numbering_lock_race_retry",
                extra={"series": series.name, "bucket_key": bucket_key},
            )
            savepoint.rollback()
            self._session.execute(stmt).scalar_one()
