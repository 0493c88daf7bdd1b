"""
Typed exception hierarchy for the invoice kernel.

Every error carries a ``code`` class attribute (machine-readable, stable
across releases) and keeps its context as attributes rather than only in
the message, so callers catch by type and report by code::

    try:
        result = invoice_service.create_from_order(order_id)
    except OrderNotEligibleError as e:
        return {"error": e.code, "order_id": e.order_id, "status": e.status}

Hierarchy:

    InvoicingError (base)
    |
    +-- NotFoundError
    |   +-- OrderNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- ClientNotFoundError
    |
    +-- OrderError
    |   +-- OrderNotEligibleError
    |
    +-- SequenceError
    |   +-- CounterNotInitializedError
    |
    +-- ConcurrencyError
    |   +-- AllocationConflictError
    |   +-- PersistenceConflictError
    |   +-- StaleStatusError
    |
    +-- LifecycleError
    |   +-- InvalidTransitionError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigError

Code            | Raised when
----------------|----------------------------------------------------------
NOT_FOUND       | ORDER_NOT_FOUND / INVOICE_NOT_FOUND / CLIENT_NOT_FOUND
ORDER_NOT_ELIGIBLE | Order has not reached an invoiceable status
COUNTER_NOT_INITIALIZED | Allocation attempted before the counter row exists
ALLOCATION_CONFLICT | Counter compare-and-set lost every bounded retry
PERSISTENCE_CONFLICT | Uniqueness collision that is not an existing invoice
OPTIMISTIC_LOCK_CONFLICT | Status changed underneath a transition
INVALID_TRANSITION | Status change not permitted by the state machine
IMMUTABILITY_VIOLATION | Write to a write-once field or protected row

ConcurrencyError subclasses are safe to retry as a whole operation.
"""


class InvoicingError(Exception):
    """
    Base exception for all invoice kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVOICING_ERROR"


# Lookup failures


class NotFoundError(InvoicingError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InvoiceNotFoundError(NotFoundError):
    """Invoice with given ID or number was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_ref: str):
        self.invoice_ref = invoice_ref
        super().__init__(f"Invoice not found: {invoice_ref}")


class ClientNotFoundError(NotFoundError):
    """Client with given ID was not found."""

    code: str = "CLIENT_NOT_FOUND"

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client not found: {client_id}")


# Order-related exceptions


class OrderError(InvoicingError):
    """Base exception for order-related errors."""

    code: str = "ORDER_ERROR"


class OrderNotEligibleError(OrderError):
    """Order is not in a status that permits invoicing."""

    code: str = "ORDER_NOT_ELIGIBLE"

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(
            f"Order {order_id} is not eligible for invoicing (status: {status})"
        )


# Sequence-related exceptions


class SequenceError(InvoicingError):
    """Base exception for invoice counter errors."""

    code: str = "SEQUENCE_ERROR"


class CounterNotInitializedError(SequenceError):
    """The invoice counter row does not exist yet."""

    code: str = "COUNTER_NOT_INITIALIZED"

    def __init__(self):
        super().__init__(
            "Invoice counter is not initialized. "
            "Call SequenceService.initialize() first."
        )


# Concurrency exceptions


class ConcurrencyError(InvoicingError):
    """Base exception for concurrent modification errors."""

    code: str = "CONCURRENCY_ERROR"


class AllocationConflictError(ConcurrencyError):
    """Every compare-and-set attempt on the counter row lost a race."""

    code: str = "ALLOCATION_CONFLICT"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Invoice number allocation failed after {attempts} attempts "
            "due to concurrent modification"
        )


class PersistenceConflictError(ConcurrencyError):
    """
    Invoice insert hit a uniqueness constraint that could not be resolved.

    A collision on ``order_id`` is resolved to the existing invoice and is
    never raised; this is only raised when no existing invoice is found.
    """

    code: str = "PERSISTENCE_CONFLICT"

    def __init__(self, order_id: str, detail: str):
        self.order_id = order_id
        self.detail = detail
        super().__init__(
            f"Could not persist invoice for order {order_id}: {detail}"
        )


class StaleStatusError(ConcurrencyError):
    """The invoice status changed between read and update."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, invoice_id: str, expected_status: str):
        self.invoice_id = invoice_id
        self.expected_status = expected_status
        super().__init__(
            f"Invoice {invoice_id} is no longer in status {expected_status}"
        )


# Lifecycle exceptions


class LifecycleError(InvoicingError):
    """Base exception for invoice status errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidTransitionError(LifecycleError):
    """Requested status change is not permitted."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        invoice_id: str,
        from_status: str,
        to_status: str,
        reason: str | None = None,
    ):
        self.invoice_id = invoice_id
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        message = (
            f"Invalid transition for invoice {invoice_id}: "
            f"{from_status} -> {to_status}"
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


# Immutability exceptions


class ImmutabilityError(InvoicingError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify a write-once field or delete a protected row."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Configuration


class ConfigError(InvoicingError):
    """Configuration file is missing a required key or holds a bad value."""

    code: str = "CONFIG_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
