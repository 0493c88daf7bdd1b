"""
LifecycleService -- applies invoice status transitions.

Responsibility:
    Moves invoices through DRAFT -> SENT -> PAID / OVERDUE / CANCELLED
    according to ``domain.lifecycle.VALID_TRANSITIONS``, maintains the due
    date of open invoices, and sweeps sent invoices past their due date
    into OVERDUE.

Architecture position:
    Kernel > Services -- imperative shell.
    The state machine itself is pure (domain/lifecycle.py); this service
    only reads the row, asks the domain whether the move is allowed, and
    writes it.

Invariants enforced:
    - Only edges of the state machine are ever written; terminal statuses
      (PAID, CANCELLED) never change again.
    - SENT -> OVERDUE only once the due date has passed (per the Clock).
    - Lost updates are impossible: the row is read ``FOR UPDATE`` and the
      write is conditional on the status that was read
      (``UPDATE ... WHERE id = :id AND status = :seen``).  A zero-row update
      means a concurrent transition won and is reported as
      StaleStatusError, never silently overwritten.

Failure modes:
    - InvoiceNotFoundError: unknown invoice id.
    - InvalidTransitionError: unknown target status, edge not permitted,
      terminal status, or overdue before the due date.
    - StaleStatusError: the caller's ``expected_status`` no longer holds,
      or the conditional update matched no row.

Audit relevance:
    Every applied transition logs ``invoice_status_changed`` with the old
    and new status; every refusal logs ``invoice_transition_rejected``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.dtos import InvoiceRecord
from invoice_kernel.domain.lifecycle import (
    InvoiceStatus,
    is_terminal,
    transition_block_reason,
)
from invoice_kernel.exceptions import (
    InvalidTransitionError,
    InvoiceNotFoundError,
    StaleStatusError,
)
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.models.invoice import Invoice
from invoice_kernel.selectors.invoice_selector import InvoiceSelector
from invoice_kernel.services.base import BaseService

logger = get_logger("services.lifecycle")


class LifecycleService(BaseService[Invoice]):
    """
    Status transitions for persisted invoices.

    Contract:
        ``transition(invoice_id, target)`` returns the updated InvoiceRecord
        or raises; it never returns an invoice whose status did not change.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT send documents; marking an invoice SENT is bookkeeping.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._invoices = InvoiceSelector(session)

    def transition(
        self,
        invoice_id: UUID,
        target_status: InvoiceStatus | str,
        expected_status: InvoiceStatus | None = None,
    ) -> InvoiceRecord:
        """
        Move an invoice to ``target_status``.

        Args:
            invoice_id: Invoice to transition.
            target_status: Desired status.
            expected_status: If given, the transition is applied only when
                the invoice is currently in this status (caller-side
                optimistic check).

        Raises:
            InvoiceNotFoundError, InvalidTransitionError, StaleStatusError.
        """
        return self._transition(
            invoice_id,
            target_status,
            expected_status,
            self._clock.now(),
        )

    def _transition(
        self,
        invoice_id: UUID,
        target_status: InvoiceStatus | str,
        expected_status: InvoiceStatus | None,
        now: datetime,
    ) -> InvoiceRecord:
        with LogContext.bind(invoice_id=str(invoice_id)):
            invoice = self._lock(invoice_id)
            current = InvoiceStatus(invoice.status)

            try:
                target = InvoiceStatus(target_status)
            except ValueError:
                logger.info(
                    "invoice_transition_rejected",
                    extra={
                        "from_status": current.value,
                        "to_status": str(target_status),
                        "reason": "unknown status",
                    },
                )
                raise InvalidTransitionError(
                    str(invoice_id), current.value, str(target_status), "unknown status"
                ) from None

            if expected_status is not None and current is not InvoiceStatus(expected_status):
                logger.warning(
                    "invoice_status_stale",
                    extra={
                        "expected_status": InvoiceStatus(expected_status).value,
                        "actual_status": current.value,
                    },
                )
                raise StaleStatusError(str(invoice_id), InvoiceStatus(expected_status).value)

            reason = transition_block_reason(current, target, invoice.due_date, now)
            if reason is not None:
                logger.info(
                    "invoice_transition_rejected",
                    extra={
                        "from_status": current.value,
                        "to_status": target.value,
                        "reason": reason,
                    },
                )
                raise InvalidTransitionError(
                    str(invoice_id), current.value, target.value, reason
                )

            result = self.session.execute(
                update(Invoice)
                .where(Invoice.id == invoice_id, Invoice.status == current.value)
                .values(status=target.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StaleStatusError(str(invoice_id), current.value)

            logger.info(
                "invoice_status_changed",
                extra={
                    "from_status": current.value,
                    "to_status": target.value,
                    "invoice_number": invoice.display_number,
                },
            )
            return self._invoices.get_by_id(invoice_id)

    def mark_sent(self, invoice_id: UUID) -> InvoiceRecord:
        return self.transition(invoice_id, InvoiceStatus.SENT)

    def mark_paid(self, invoice_id: UUID) -> InvoiceRecord:
        return self.transition(invoice_id, InvoiceStatus.PAID)

    def mark_overdue(self, invoice_id: UUID) -> InvoiceRecord:
        return self.transition(invoice_id, InvoiceStatus.OVERDUE)

    def cancel(self, invoice_id: UUID) -> InvoiceRecord:
        return self.transition(invoice_id, InvoiceStatus.CANCELLED)

    def update_due_date(
        self,
        invoice_id: UUID,
        due_date: datetime | None,
    ) -> InvoiceRecord:
        """
        Replace the due date of an invoice that is not yet paid or cancelled.

        Raises:
            InvoiceNotFoundError, InvalidTransitionError (terminal status).
        """
        with LogContext.bind(invoice_id=str(invoice_id)):
            invoice = self._lock(invoice_id)
            current = InvoiceStatus(invoice.status)
            if is_terminal(current):
                raise InvalidTransitionError(
                    str(invoice_id),
                    current.value,
                    current.value,
                    f"due date cannot change once {current.value}",
                )

            previous = invoice.due_date
            invoice.due_date = due_date
            invoice.updated_at = self._clock.now()
            self.session.flush()

            logger.info(
                "invoice_due_date_changed",
                extra={"old_due_date": previous, "due_date": due_date},
            )
            return InvoiceRecord.from_model(invoice)

    def sweep_overdue(self, now: datetime | None = None) -> list[InvoiceRecord]:
        """
        Move every SENT invoice whose due date has passed to OVERDUE.

        Invoices transitioned concurrently (paid or cancelled while the sweep
        runs) are skipped.

        Returns:
            The invoices that were marked overdue.
        """
        if now is None:
            now = self._clock.now()

        candidate_ids = self.session.execute(
            select(Invoice.id)
            .where(
                Invoice.status == InvoiceStatus.SENT.value,
                Invoice.due_date.is_not(None),
                Invoice.due_date < now,
            )
            .order_by(Invoice.invoice_number)
        ).scalars().all()

        marked: list[InvoiceRecord] = []
        for invoice_id in candidate_ids:
            try:
                marked.append(
                    self._transition(
                        invoice_id,
                        InvoiceStatus.OVERDUE,
                        InvoiceStatus.SENT,
                        now,
                    )
                )
            except StaleStatusError:
                logger.info(
                    "overdue_sweep_skipped",
                    extra={"skipped_invoice_id": str(invoice_id)},
                )

        logger.info(
            "overdue_sweep_completed",
            extra={"candidates": len(candidate_ids), "marked": len(marked)},
        )
        return marked

    def _lock(self, invoice_id: UUID) -> Invoice:
        invoice = self.session.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice
