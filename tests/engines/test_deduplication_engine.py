"""
Tests for duplicate detection over stored quotation responses.

Covers:
- Grouping by (external_message_id, rfq_id, vendor_id)
- Earliest-created retention with id tie-break
- Idempotence: planning over the survivors finds nothing
- Operator statistics
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from sourcing_engines.deduplication import (
    DedupKey,
    ResponseRecord,
    duplicate_statistics,
    plan_deduplication,
)

T0 = datetime(2025, 1, 10, 8, 0, tzinfo=UTC)
RFQ_1 = UUID("10000000-0000-0000-0000-000000000001")
RFQ_2 = UUID("10000000-0000-0000-0000-000000000002")
VENDOR_1 = UUID("20000000-0000-0000-0000-000000000001")
VENDOR_2 = UUID("20000000-0000-0000-0000-000000000002")


def _record(
    message_id: str,
    minutes: int,
    rfq_id: UUID = RFQ_1,
    vendor_id: UUID = VENDOR_1,
    response_id: UUID | None = None,
) -> ResponseRecord:
    return ResponseRecord(
        response_id=response_id or uuid4(),
        external_message_id=message_id,
        rfq_id=rfq_id,
        vendor_id=vendor_id,
        created_at=T0 + timedelta(minutes=minutes),
    )


class TestPlanDeduplication:

    def test_keeps_earliest_of_each_group(self):
        first = _record("<m1>", 0)
        second = _record("<m1>", 5)
        third = _record("<m1>", 10)
        plan = plan_deduplication(records=[third, first, second])

        assert len(plan.groups) == 1
        group = plan.groups[0]
        assert group.key == DedupKey("<m1>", RFQ_1, VENDOR_1)
        assert group.keep_id == first.response_id
        assert set(group.discard_ids) == {second.response_id, third.response_id}
        assert group.size == 3
        assert plan.records_to_delete == 2
        assert plan.total_records == 3

    def test_same_timestamp_breaks_tie_by_id(self):
        low = _record("<m1>", 0, response_id=UUID("00000000-0000-0000-0000-000000000001"))
        high = _record("<m1>", 0, response_id=UUID("ffffffff-0000-0000-0000-000000000001"))
        plan = plan_deduplication(records=[high, low])
        assert plan.groups[0].keep_id == low.response_id

    def test_key_parts_must_all_match(self):
        records = [
            _record("<m1>", 0),
            _record("<m1>", 1, rfq_id=RFQ_2),
            _record("<m1>", 2, vendor_id=VENDOR_2),
            _record("<m2>", 3),
        ]
        plan = plan_deduplication(records=records)
        assert plan.is_empty
        assert plan.records_to_delete == 0

    def test_empty_input(self):
        plan = plan_deduplication(records=[])
        assert plan.is_empty
        assert plan.total_records == 0

    def test_groups_are_ordered_by_key(self):
        records = [
            _record("<b>", 0), _record("<b>", 1),
            _record("<a>", 0), _record("<a>", 1),
        ]
        plan = plan_deduplication(records=records)
        assert [g.key.external_message_id for g in plan.groups] == ["<a>", "<b>"]

    def test_key_string_form(self):
        key = DedupKey("<m1>", RFQ_1, VENDOR_1)
        assert str(key) == f"<m1>|{RFQ_1}|{VENDOR_1}"


record_strategy = st.builds(
    _record,
    message_id=st.sampled_from(["<m1>", "<m2>", "<m3>"]),
    minutes=st.integers(min_value=0, max_value=5),
    rfq_id=st.sampled_from([RFQ_1, RFQ_2]),
    vendor_id=st.sampled_from([VENDOR_1, VENDOR_2]),
)


class TestDeduplicationProperties:

    @given(st.lists(record_strategy, max_size=30))
    @settings(max_examples=100)
    def test_survivors_have_unique_keys_and_replanning_is_empty(self, records):
        plan = plan_deduplication(records=records)
        discarded = {rid for g in plan.groups for rid in g.discard_ids}
        survivors = [r for r in records if r.response_id not in discarded]

        assert len({r.key for r in survivors}) == len(survivors)
        assert {r.key for r in survivors} == {r.key for r in records}
        assert plan_deduplication(records=survivors).is_empty

    @given(st.lists(record_strategy, max_size=30))
    @settings(max_examples=100)
    def test_kept_record_is_earliest_of_its_key(self, records):
        by_id = {r.response_id: r for r in records}
        for group in plan_deduplication(records=records).groups:
            kept = by_id[group.keep_id]
            for rid in group.discard_ids:
                other = by_id[rid]
                assert (kept.created_at, str(kept.response_id)) < (other.created_at, str(other.response_id))

    @given(st.lists(record_strategy, max_size=30), st.randoms())
    @settings(max_examples=50)
    def test_plan_is_independent_of_load_order(self, records, rnd):
        shuffled = list(records)
        rnd.shuffle(shuffled)
        first = plan_deduplication(records=records)
        second = plan_deduplication(records=shuffled)
        assert [(g.key, g.keep_id, set(g.discard_ids)) for g in first.groups] == [
            (g.key, g.keep_id, set(g.discard_ids)) for g in second.groups
        ]


class TestDuplicateStatistics:

    def test_counts_per_message(self):
        records = [
            _record("<m1>", 0), _record("<m1>", 1), _record("<m1>", 2),
            _record("<m2>", 0),
        ]
        stats = duplicate_statistics(records=records)
        assert stats.unique_messages == 2
        assert stats.total_records == 4
        assert stats.duplicate_records == 2
        assert stats.max_duplicates_per_message == 3

    def test_empty(self):
        stats = duplicate_statistics(records=[])
        assert stats.unique_messages == 0
        assert stats.max_duplicates_per_message == 0
