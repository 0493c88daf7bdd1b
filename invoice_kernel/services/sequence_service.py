"""
SequenceService -- gap-free invoice number allocation from a single counter row.

Responsibility:
    Owns the one ``invoice_counters`` row (prefix, next_number, suffix) and
    hands out invoice numbers from it.  Also owns the idempotent
    initialization of that row, so no out-of-band set-up step is needed.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by InvoiceService exactly once per invoice it creates.

Invariants enforced:
    - Exactly one counter row: the constant ``singleton_key`` column is
      UNIQUE, so a second concurrent initialize() loses on the constraint
      and becomes a no-op.
    - next_number only ever increases, by exactly one per allocation.
      The increment is a compare-and-set:
          UPDATE ... SET next_number = next_number + 1
          WHERE next_number = :seen AND prefix = :prefix AND suffix = :suffix
      issued after reading the row ``FOR UPDATE``.  A separate read and
      blind write is never used; the aggregate-max-plus-one pattern over the
      invoices table is never used.
    - Transactional: the increment is visible only when the caller's
      transaction commits.  If that transaction rolls back, the number is
      returned to the counter rather than skipped.
    - A prefix never ends and a suffix never starts with a digit, so the
      number stays delimited in the displayed string.

Failure modes:
    - CounterNotInitializedError: allocate() before initialize().
    - AllocationConflictError: the compare-and-set lost ``max_attempts``
      times in a row (short linear backoff between attempts).

Audit relevance:
    Every allocation is logged at INFO with the number, prefix and suffix;
    every lost compare-and-set is logged at WARNING with the attempt number.
"""

import time
from collections.abc import Callable

from sqlalchemy import String, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from invoice_kernel.db.base import Base
from invoice_kernel.domain.dtos import AllocatedNumber
from invoice_kernel.domain.numbering import affix_error
from invoice_kernel.exceptions import (
    AllocationConflictError,
    CounterNotInitializedError,
)
from invoice_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class InvoiceCounter(Base):
    """
    The invoice counter table.

    Holds a single row per deployment.  Row-level locking plus the
    compare-and-set in SequenceService.allocate() keep it gap-free.
    """

    __tablename__ = "invoice_counters"

    SINGLETON = "invoice"

    singleton_key: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        default=SINGLETON,
    )

    prefix: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    suffix: Mapped[str] = mapped_column(String(20), nullable=False, default="")

    # Next number to hand out (pre-increment value is returned)
    next_number: Mapped[int] = mapped_column(nullable=False, default=1)


class SequenceService:
    """
    Service for allocating invoice numbers.

    Contract:
        ``allocate()`` returns the pre-increment ``next_number`` together with
        the prefix/suffix that were current at that instant, and advances the
        counter by exactly one within the caller's transaction.

    Guarantees:
        - Concurrent allocations each receive a distinct, consecutive number.
        - No number is handed out twice; none is skipped while the callers'
          transactions commit.
        - ``initialize()`` is idempotent.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT partition counters by tenant or year.

    Usage:
        with session_scope() as session:
            allocated = SequenceService(session).allocate()
            # allocated.display -> "FAC-1"
    """

    DEFAULT_MAX_ATTEMPTS = 5
    DEFAULT_BACKOFF_SECONDS = 0.01

    def __init__(
        self,
        session: Session,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the sequence service.

        Args:
            session: SQLAlchemy session (should be in a transaction).
            max_attempts: Compare-and-set attempts before giving up.
            backoff_seconds: Base delay; attempt ``n`` waits ``n * backoff``.
            sleep: Injectable sleep function (tests pass a no-op).
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._session = session
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate(self) -> AllocatedNumber:
        """
        Allocate the next invoice number.

        Preconditions:
            - The counter row exists (see ``initialize()``).
            - The caller is within an active database transaction.

        Postconditions:
            - Returns the value of ``next_number`` before the increment.
            - ``next_number`` is exactly one higher inside the caller's
              transaction, and the counter row stays locked until it ends.

        Raises:
            CounterNotInitializedError: No counter row.
            AllocationConflictError: Every attempt lost the compare-and-set.
        """
        for attempt in range(1, self._max_attempts + 1):
            counter = self._lock_counter()
            if counter is None:
                raise CounterNotInitializedError()

            seen = AllocatedNumber(
                number=counter.next_number,
                prefix=counter.prefix,
                suffix=counter.suffix,
            )

            if self._compare_and_set(seen):
                logger.info(
                    "invoice_number_allocated",
                    extra={
                        "invoice_number": seen.number,
                        "prefix": seen.prefix,
                        "suffix": seen.suffix,
                        "attempt": attempt,
                    },
                )
                return seen

            logger.warning(
                "invoice_number_allocation_conflict",
                extra={
                    "attempt": attempt,
                    "max_attempts": self._max_attempts,
                    "seen_number": seen.number,
                },
            )
            if attempt < self._max_attempts:
                self._sleep(self._backoff_seconds * attempt)

        logger.error(
            "invoice_number_allocation_exhausted",
            extra={"attempts": self._max_attempts},
        )
        raise AllocationConflictError(self._max_attempts)

    def _lock_counter(self) -> InvoiceCounter | None:
        # Fresh read: another transaction may have advanced the row since
        # this session last saw it.
        return self._session.execute(
            select(InvoiceCounter)
            .where(InvoiceCounter.singleton_key == InvoiceCounter.SINGLETON)
            .with_for_update()  # Row-level lock (PostgreSQL)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _compare_and_set(self, seen: AllocatedNumber) -> bool:
        """
        Advance the counter only if it still holds exactly what was read.

        Returns False when a concurrent writer got there first.
        """
        result = self._session.execute(
            update(InvoiceCounter)
            .where(
                InvoiceCounter.singleton_key == InvoiceCounter.SINGLETON,
                InvoiceCounter.next_number == seen.number,
                InvoiceCounter.prefix == seen.prefix,
                InvoiceCounter.suffix == seen.suffix,
            )
            .values(next_number=InvoiceCounter.next_number + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def initialize(
        self,
        prefix: str = "FAC-",
        suffix: str = "",
        start_number: int = 1,
    ) -> bool:
        """
        Create the counter row if it does not exist yet.

        Idempotent: when a counter already exists (including one created
        concurrently by another transaction) this is a no-op and the
        existing prefix, suffix and next_number are left untouched.

        Returns:
            True if this call created the counter, False if it existed.
        """
        if start_number < 1:
            raise ValueError(f"start_number must be >= 1, got {start_number}")
        _check_affixes(prefix, suffix)

        if self.peek() is not None:
            logger.debug("invoice_counter_already_initialized")
            return False

        # Another transaction may create the row between peek() and flush();
        # a savepoint keeps the caller's other work if we lose that race.
        savepoint = self._session.begin_nested()
        try:
            self._session.add(
                InvoiceCounter(
                    singleton_key=InvoiceCounter.SINGLETON,
                    prefix=prefix,
                    suffix=suffix,
                    next_number=start_number,
                )
            )
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("invoice_counter_init_race_lost")
            return False

        logger.info(
            "invoice_counter_initialized",
            extra={
                "prefix": prefix,
                "suffix": suffix,
                "next_number": start_number,
            },
        )
        return True

    def peek(self) -> AllocatedNumber | None:
        """
        Read the number the next allocation would return, without allocating.

        Returns:
            The pending number with current prefix/suffix, or None if the
            counter is not initialized.
        """
        counter = self._session.execute(
            select(InvoiceCounter)
            .where(InvoiceCounter.singleton_key == InvoiceCounter.SINGLETON)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            return None
        return AllocatedNumber(
            number=counter.next_number,
            prefix=counter.prefix,
            suffix=counter.suffix,
        )

    def reconfigure(self, prefix: str, suffix: str) -> AllocatedNumber:
        """
        Change the prefix/suffix used by future allocations.

        The numeric counter is never touched: numbering continues from the
        current ``next_number``.  Invoices already issued keep the
        prefix/suffix they were given.

        Raises:
            ValueError: The prefix ends or the suffix starts with a digit.
            CounterNotInitializedError: No counter row.
        """
        _check_affixes(prefix, suffix)
        counter = self._lock_counter()
        if counter is None:
            raise CounterNotInitializedError()

        previous = (counter.prefix, counter.suffix)
        counter.prefix = prefix
        counter.suffix = suffix
        self._session.flush()

        logger.info(
            "invoice_counter_reconfigured",
            extra={
                "old_prefix": previous[0],
                "old_suffix": previous[1],
                "prefix": prefix,
                "suffix": suffix,
                "next_number": counter.next_number,
            },
        )
        return AllocatedNumber(
            number=counter.next_number,
            prefix=counter.prefix,
            suffix=counter.suffix,
        )


def _check_affixes(prefix: str, suffix: str) -> None:
    reason = affix_error(prefix, suffix)
    if reason is not None:
        logger.warning(
            "invoice_counter_affixes_rejected",
            extra={"prefix": prefix, "suffix": suffix, "reason": reason},
        )
        raise ValueError(reason)
