"""
SequenceService: single counter row, gap-free allocation.

Concurrent allocation is covered in tests/concurrency/.
"""

import pytest
from sqlalchemy import select

from invoice_kernel.exceptions import (
    AllocationConflictError,
    CounterNotInitializedError,
    ImmutabilityViolationError,
)
from invoice_kernel.services.sequence_service import InvoiceCounter, SequenceService


class _AlwaysLosingSequence(SequenceService):
    """Simulates a concurrent writer winning every compare-and-set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.attempts = 0

    def _compare_and_set(self, seen):
        self.attempts += 1
        return False


class _LosesOnceSequence(SequenceService):

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.attempts = 0

    def _compare_and_set(self, seen):
        self.attempts += 1
        if self.attempts == 1:
            return False
        return super()._compare_and_set(seen)


class TestInitialize:

    def test_creates_counter(self, session):
        service = SequenceService(session)
        assert service.initialize(prefix="FAC-", suffix="") is True

        pending = service.peek()
        assert pending.number == 1
        assert pending.prefix == "FAC-"
        assert pending.suffix == ""

    def test_second_initialize_is_a_no_op(self, session):
        service = SequenceService(session)
        service.initialize(prefix="FAC-")
        service.allocate()

        assert service.initialize(prefix="OTHER-", start_number=50) is False

        pending = service.peek()
        assert pending.number == 2
        assert pending.prefix == "FAC-"

    def test_exactly_one_counter_row(self, session):
        service = SequenceService(session)
        service.initialize()
        service.initialize()
        rows = session.execute(select(InvoiceCounter)).scalars().all()
        assert len(rows) == 1

    def test_custom_start_number(self, session):
        service = SequenceService(session)
        service.initialize(prefix="INV-", suffix="/24", start_number=100)
        assert service.allocate().display == "INV-100/24"

    def test_start_number_must_be_positive(self, session):
        with pytest.raises(ValueError):
            SequenceService(session).initialize(start_number=0)

    def test_peek_without_counter(self, session):
        assert SequenceService(session).peek() is None


class TestAllocate:

    def test_returns_pre_increment_value(self, counter):
        service = SequenceService(counter)
        allocated = service.allocate()
        assert allocated.number == 1
        assert allocated.display == "FAC-1"
        assert service.peek().number == 2

    def test_consecutive_numbers(self, counter):
        service = SequenceService(counter)
        numbers = [service.allocate().number for _ in range(5)]
        assert numbers == [1, 2, 3, 4, 5]
        assert service.peek().number == 6

    def test_without_counter_raises(self, session):
        with pytest.raises(CounterNotInitializedError) as exc_info:
            SequenceService(session).allocate()
        assert exc_info.value.code == "COUNTER_NOT_INITIALIZED"

    def test_rolled_back_allocation_returns_the_number(self, counter):
        service = SequenceService(counter)
        savepoint = counter.begin_nested()
        assert service.allocate().number == 1
        savepoint.rollback()

        assert service.allocate().number == 1

    def test_logs_allocation(self, counter, captured_logs):
        SequenceService(counter).allocate()
        records = [r for r in captured_logs() if r["message"] == "invoice_number_allocated"]
        assert len(records) == 1
        assert records[0]["invoice_number"] == 1
        assert records[0]["prefix"] == "FAC-"


class TestAllocationConflict:

    def test_retries_then_raises(self, counter):
        sleeps = []
        service = _AlwaysLosingSequence(counter, max_attempts=5, sleep=sleeps.append)

        with pytest.raises(AllocationConflictError) as exc_info:
            service.allocate()

        assert exc_info.value.attempts == 5
        assert exc_info.value.code == "ALLOCATION_CONFLICT"
        assert service.attempts == 5
        # Linear backoff between attempts, none after the last
        assert sleeps == pytest.approx([0.01, 0.02, 0.03, 0.04])

    def test_failed_allocation_leaves_counter_unchanged(self, counter):
        service = _AlwaysLosingSequence(counter, sleep=lambda _: None)
        with pytest.raises(AllocationConflictError):
            service.allocate()
        assert SequenceService(counter).peek().number == 1

    def test_recovers_after_one_lost_race(self, counter, captured_logs):
        service = _LosesOnceSequence(counter, sleep=lambda _: None)
        assert service.allocate().number == 1
        assert service.attempts == 2

        messages = [r["message"] for r in captured_logs()]
        assert "invoice_number_allocation_conflict" in messages
        assert "invoice_number_allocated" in messages

    def test_max_attempts_must_be_positive(self, session):
        with pytest.raises(ValueError):
            SequenceService(session, max_attempts=0)


class TestReconfigure:

    def test_changes_affixes_but_not_number(self, counter):
        service = SequenceService(counter)
        service.allocate()
        service.allocate()

        pending = service.reconfigure(prefix="INV-", suffix="/B")
        assert pending.number == 3
        assert service.allocate().display == "INV-3/B"

    def test_requires_counter(self, session):
        with pytest.raises(CounterNotInitializedError):
            SequenceService(session).reconfigure(prefix="X", suffix="")

    @pytest.mark.parametrize(
        "prefix, suffix",
        [("FAC-1", ""), ("FAC-", "2024"), ("7", "")],
    )
    def test_rejects_affixes_touching_the_number(self, counter, prefix, suffix):
        service = SequenceService(counter)
        for _ in range(12):
            service.allocate()

        with pytest.raises(ValueError):
            service.reconfigure(prefix=prefix, suffix=suffix)

        pending = service.peek()
        assert (pending.prefix, pending.suffix, pending.number) == ("FAC-", "", 13)

    def test_initialize_rejects_affixes_touching_the_number(self, session):
        with pytest.raises(ValueError):
            SequenceService(session).initialize(prefix="INV2024", suffix="")
        assert SequenceService(session).peek() is None


class TestCounterProtection:

    def test_counter_cannot_move_backwards(self, counter):
        service = SequenceService(counter)
        service.allocate()
        service.allocate()

        row = counter.execute(
            select(InvoiceCounter).execution_options(populate_existing=True)
        ).scalar_one()
        row.next_number = 1
        with pytest.raises(ImmutabilityViolationError):
            counter.flush()

    def test_counter_cannot_be_deleted(self, counter):
        row = counter.execute(select(InvoiceCounter)).scalar_one()
        counter.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            counter.flush()
