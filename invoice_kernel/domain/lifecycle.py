"""
Invoice status state machine.

Pure domain: no I/O.  LifecycleService applies these rules against the
database; everything that needs to ask "is this move allowed?" asks here.

State machine:
    DRAFT   -> SENT | CANCELLED
    SENT    -> PAID | OVERDUE | CANCELLED
    OVERDUE -> PAID | CANCELLED
    PAID:      terminal
    CANCELLED: terminal

SENT -> OVERDUE additionally requires the due date to have passed.
"""

from datetime import datetime
from enum import Enum


class InvoiceStatus(str, Enum):
    """Status of an invoice."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


INITIAL_STATUS = InvoiceStatus.DRAFT

# Allowed state transitions (from -> set of valid targets)
VALID_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({
        InvoiceStatus.SENT, InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.SENT: frozenset({
        InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.OVERDUE: frozenset({
        InvoiceStatus.PAID, InvoiceStatus.CANCELLED,
    }),
    # Terminal states -- no transitions allowed
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES: frozenset[InvoiceStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

# Reported together as "pending" by the stats aggregate
PENDING_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.DRAFT, InvoiceStatus.SENT,
})


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    """Return True if ``current -> target`` is an edge of the state machine."""
    return target in VALID_TRANSITIONS.get(InvoiceStatus(current), frozenset())


def is_terminal(status: InvoiceStatus) -> bool:
    return InvoiceStatus(status) in TERMINAL_STATUSES


def is_overdue(
    status: InvoiceStatus,
    due_date: datetime | None,
    now: datetime,
) -> bool:
    """
    True when a SENT invoice has passed its due date.

    Invoices without a due date never become overdue by the passage of time.
    """
    if InvoiceStatus(status) is not InvoiceStatus.SENT or due_date is None:
        return False
    return now > due_date


def transition_block_reason(
    current: InvoiceStatus,
    target: InvoiceStatus,
    due_date: datetime | None,
    now: datetime,
) -> str | None:
    """
    Explain why ``current -> target`` is refused, or return None if allowed.
    """
    current = InvoiceStatus(current)
    target = InvoiceStatus(target)
    if current in TERMINAL_STATUSES:
        return f"{current.value} is a terminal status"
    if not can_transition(current, target):
        return "transition not permitted"
    if target is InvoiceStatus.OVERDUE and not is_overdue(current, due_date, now):
        if due_date is None:
            return "invoice has no due date"
        return f"due date {due_date.isoformat()} has not passed"
    return None
