"""
sourcing_engines.deduplication -- Duplicate detection for inbound quotation responses.

Responsibility:
    Decide, for a set of stored quotation responses, which rows are
    duplicates of the same inbound message and which single row of each
    group is canonical.  Also summarizes duplication for operators.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The ReconciliationService loads records, asks this engine for a plan,
    and performs the deletes group by group.

Invariants enforced:
    - Matching key: (external_message_id, rfq_id, vendor_id).  Records with
      equal keys describe the same vendor reply to the same RFQ.
    - Retention: the canonical record is the one with the earliest
      created_at; the record id breaks ties, so the choice never depends
      on load order.
    - Idempotence: a plan computed over its own survivors is empty.

Failure modes:
    - None.  Empty input produces an empty plan.

Usage:
    from sourcing_engines.deduplication import plan_deduplication

    plan = plan_deduplication(records=records)
    for group in plan.groups:
        delete(group.discard_ids)
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sourcing_engines.tracer import traced_engine


@dataclass(frozen=True, order=True)
class DedupKey:
    """Matching key of an inbound response."""

    external_message_id: str
    rfq_id: UUID
    vendor_id: UUID

    def __str__(self) -> str:
        return f"{self.external_message_id}|{self.rfq_id}|{self.vendor_id}"


@dataclass(frozen=True)
class ResponseRecord:
    """The fields of a stored response that deduplication looks at."""

    response_id: UUID
    external_message_id: str
    rfq_id: UUID
    vendor_id: UUID
    created_at: datetime
    processing_status: str = "pending_review"

    @property
    def key(self) -> DedupKey:
        return DedupKey(self.external_message_id, self.rfq_id, self.vendor_id)


@dataclass(frozen=True)
class DuplicateGroup:
    """One key with more than one stored record."""

    key: DedupKey
    keep_id: UUID
    discard_ids: tuple[UUID, ...]

    @property
    def size(self) -> int:
        return 1 + len(self.discard_ids)


@dataclass(frozen=True)
class DedupPlan:
    """Groups to clean up, ordered by key."""

    groups: tuple[DuplicateGroup, ...]
    total_records: int

    @property
    def records_to_delete(self) -> int:
        return sum(len(g.discard_ids) for g in self.groups)

    @property
    def is_empty(self) -> bool:
        return not self.groups


@dataclass(frozen=True)
class DuplicateStatistics:
    """Operator-facing duplication summary, counted per inbound message id."""

    unique_messages: int
    total_records: int
    duplicate_records: int
    max_duplicates_per_message: int


def _retention_order(record: ResponseRecord) -> tuple[datetime, str]:
    return (record.created_at, str(record.response_id))


@traced_engine("deduplication", "1.0", fingerprint_fields=("records",))
def plan_deduplication(*, records: Sequence[ResponseRecord]) -> DedupPlan:
    """Group records by matching key and keep the earliest of each group."""
    by_key: dict[DedupKey, list[ResponseRecord]] = defaultdict(list)
    for record in records:
        by_key[record.key].append(record)

    groups: list[DuplicateGroup] = []
    for key in sorted(by_key):
        members = by_key[key]
        if len(members) < 2:
            continue
        ordered = sorted(members, key=_retention_order)
        groups.append(
            DuplicateGroup(
                key=key,
                keep_id=ordered[0].response_id,
                discard_ids=tuple(r.response_id for r in ordered[1:]),
            )
        )

    return DedupPlan(groups=tuple(groups), total_records=len(records))


@traced_engine("duplicate_statistics", "1.0")
def duplicate_statistics(*, records: Sequence[ResponseRecord]) -> DuplicateStatistics:
    """Count records per external message id."""
    per_message: dict[str, int] = defaultdict(int)
    for record in records:
        per_message[record.external_message_id] += 1

    total = len(records)
    return DuplicateStatistics(
        unique_messages=len(per_message),
        total_records=total,
        duplicate_records=total - len(per_message),
        max_duplicates_per_message=max(per_message.values(), default=0),
    )
