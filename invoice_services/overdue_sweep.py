"""
Periodic job: move sent invoices past their due date to OVERDUE.

Runs LifecycleService.sweep_overdue in its own transaction.  Safe to run
concurrently with normal traffic: invoices paid or cancelled while the
sweep runs are skipped, never overwritten.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session, sessionmaker

from invoice_kernel.db.engine import session_scope
from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.dtos import InvoiceRecord
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.services.lifecycle_service import LifecycleService

logger = get_logger("services.overdue_sweep")


def run_overdue_sweep(
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> list[InvoiceRecord]:
    """Mark overdue invoices and return them."""
    clock = clock or SystemClock()
    with LogContext.bind(correlation_id=correlation_id):
        with session_scope(session_factory) as session:
            marked = LifecycleService(session, clock).sweep_overdue(now)
        logger.info("overdue_sweep_committed", extra={"marked": len(marked)})
        return marked
