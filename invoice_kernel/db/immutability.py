"""
ORM-level write-once enforcement for invoices, items and the counter.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners here check the invoicing invariants and raise
ImmutabilityViolationError before any SQL is sent:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

Entity          | Rule
----------------|------------------------------------------------------------
Invoice         | Numeric identity, money, order/client and billing snapshot
                | are write-once; only status, due_date, updated_at change.
                | Never deleted.
InvoiceItem     | Never updated, never deleted (historical snapshot).
InvoiceCounter  | next_number never decreases; the row is never deleted.

Status and due_date are legitimately mutable and are governed by
LifecycleService; this module does not validate transitions.

Usage:

    from invoice_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; init_engine_from_url calls it
"""

from sqlalchemy import event, inspect

from invoice_kernel.exceptions import ImmutabilityViolationError
from invoice_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

INVOICE_MUTABLE_FIELDS = frozenset({"status", "due_date", "updated_at"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_invoice_immutability(mapper, connection, target):
    """Block changes to any invoice column outside INVOICE_MUTABLE_FIELDS."""
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in INVOICE_MUTABLE_FIELDS or attr.key == "items":
            continue
        if attr.history.has_changes():
            raise _blocked(
                "Invoice",
                target.id,
                "UPDATE",
                f"Field '{attr.key}' is write-once",
                field=attr.key,
            )


def _check_invoice_delete(mapper, connection, target):
    raise _blocked("Invoice", target.id, "DELETE", "Invoices cannot be deleted")


def _check_invoice_item_immutability(mapper, connection, target):
    raise _blocked(
        "InvoiceItem",
        target.id,
        "UPDATE",
        "Invoice items are an immutable snapshot",
    )


def _check_invoice_item_delete(mapper, connection, target):
    raise _blocked(
        "InvoiceItem",
        target.id,
        "DELETE",
        "Invoice items cannot be deleted",
    )


def _check_counter_monotonic(mapper, connection, target):
    """next_number may only move forward."""
    history = inspect(target).attrs.next_number.history
    if not history.deleted or not history.added:
        return
    old, new = history.deleted[0], history.added[0]
    if new < old:
        raise _blocked(
            "InvoiceCounter",
            target.id,
            "UPDATE",
            f"next_number cannot decrease ({old} -> {new})",
            field="next_number",
        )


def _check_counter_delete(mapper, connection, target):
    raise _blocked(
        "InvoiceCounter",
        target.id,
        "DELETE",
        "The invoice counter cannot be deleted",
    )


def _listeners():
    from invoice_kernel.models.invoice import Invoice, InvoiceItem
    from invoice_kernel.services.sequence_service import InvoiceCounter

    return [
        (Invoice, "before_update", _check_invoice_immutability),
        (Invoice, "before_delete", _check_invoice_delete),
        (InvoiceItem, "before_update", _check_invoice_item_immutability),
        (InvoiceItem, "before_delete", _check_invoice_item_delete),
        (InvoiceCounter, "before_update", _check_counter_monotonic),
        (InvoiceCounter, "before_delete", _check_counter_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
