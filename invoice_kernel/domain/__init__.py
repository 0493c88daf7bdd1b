"""Pure domain layer for the invoice kernel: clock, lifecycle rules, numbering, DTOs."""

from invoice_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from invoice_kernel.domain.lifecycle import (
    INITIAL_STATUS,
    PENDING_STATUSES,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    InvoiceStatus,
    can_transition,
    is_overdue,
)
from invoice_kernel.domain.numbering import format_invoice_number, parse_invoice_number

__all__ = [
    "Clock",
    "DeterministicClock",
    "INITIAL_STATUS",
    "InvoiceStatus",
    "PENDING_STATUSES",
    "SystemClock",
    "TERMINAL_STATUSES",
    "VALID_TRANSITIONS",
    "can_transition",
    "format_invoice_number",
    "is_overdue",
    "parse_invoice_number",
]
