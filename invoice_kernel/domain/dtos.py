"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the service boundary:
    order/client snapshots (input to invoice derivation), allocated numbers,
    invoice records (persistence boundary), list filters/pages and the stats
    aggregate.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods are boundary converters invoked only
    from the service and selector layers.

Invariants enforced:
    - Snapshot lines carry the unit price at order time; totals are always
      recomputed from snapshot lines, never from the live catalog.
    - OrderLineSnapshot rejects non-positive quantities and negative prices.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, ClassVar
from uuid import UUID

from invoice_kernel.domain.lifecycle import InvoiceStatus
from invoice_kernel.domain.numbering import format_invoice_number

if TYPE_CHECKING:
    from invoice_kernel.models.commerce import Client as ClientModel
    from invoice_kernel.models.commerce import Order as OrderModel
    from invoice_kernel.models.invoice import Invoice as InvoiceModel
    from invoice_kernel.models.invoice import InvoiceItem as InvoiceItemModel


@dataclass(frozen=True)
class AllocatedNumber:
    """A number handed out by the sequence allocator, with its prefix/suffix."""

    number: int
    prefix: str
    suffix: str

    @property
    def display(self) -> str:
        return format_invoice_number(self.prefix, self.number, self.suffix)


# ---------------------------------------------------------------------------
# Snapshots of external collaborators
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientSnapshot:
    """Billing profile of a client, read once at invoice-creation time."""

    client_id: UUID
    name: str
    tax_id: str | None = None
    address: str | None = None
    email: str | None = None

    @classmethod
    def from_model(cls, client: ClientModel) -> ClientSnapshot:
        return cls(
            client_id=client.id,
            name=client.display_name,
            tax_id=client.tax_id,
            address=client.billing_address,
            email=client.email,
        )


@dataclass(frozen=True)
class OrderLineSnapshot:
    """One order line as it stood when the order was placed."""

    variant_id: str
    qty: int
    price_cents: int

    def __post_init__(self) -> None:
        if self.qty <= 0:
            raise ValueError(f"Line quantity must be positive, got {self.qty}")
        if self.price_cents < 0:
            raise ValueError(
                f"Line unit price cannot be negative, got {self.price_cents}"
            )

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.qty


@dataclass(frozen=True)
class OrderSnapshot:
    """Read-only view of an order as the invoicing core needs it."""

    order_id: UUID
    status: str
    total_cents: int
    client_id: UUID | None
    lines: tuple[OrderLineSnapshot, ...] = ()

    @property
    def computed_total_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)

    @classmethod
    def from_model(cls, order: OrderModel) -> OrderSnapshot:
        return cls(
            order_id=order.id,
            status=order.status,
            total_cents=order.total_cents,
            client_id=order.client_id,
            lines=tuple(
                OrderLineSnapshot(
                    variant_id=line.variant_id,
                    qty=line.qty,
                    price_cents=line.price_cents,
                )
                for line in order.lines
            ),
        )


# ---------------------------------------------------------------------------
# Invoice records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceItemRecord:
    """Persisted invoice line (immutable historical snapshot)."""

    id: UUID
    invoice_id: UUID
    variant_id: str
    qty: int
    price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.qty

    @classmethod
    def from_model(cls, item: InvoiceItemModel) -> InvoiceItemRecord:
        return cls(
            id=item.id,
            invoice_id=item.invoice_id,
            variant_id=item.variant_id,
            qty=item.qty,
            price_cents=item.price_cents,
        )


@dataclass(frozen=True)
class InvoiceRecord:
    """Persisted invoice with its items."""

    id: UUID
    order_id: UUID
    client_id: UUID | None
    invoice_number: int
    prefix: str
    suffix: str
    total_cents: int
    currency: str
    status: InvoiceStatus
    created_at: datetime
    due_date: datetime | None
    notes: str | None = None
    billing_name: str | None = None
    billing_tax_id: str | None = None
    billing_address: str | None = None
    billing_email: str | None = None
    items: tuple[InvoiceItemRecord, ...] = ()

    @property
    def display_number(self) -> str:
        return format_invoice_number(self.prefix, self.invoice_number, self.suffix)

    @classmethod
    def from_model(cls, invoice: InvoiceModel) -> InvoiceRecord:
        return cls(
            id=invoice.id,
            order_id=invoice.order_id,
            client_id=invoice.client_id,
            invoice_number=invoice.invoice_number,
            prefix=invoice.prefix,
            suffix=invoice.suffix,
            total_cents=invoice.total_cents,
            currency=invoice.currency,
            status=InvoiceStatus(invoice.status),
            created_at=invoice.created_at,
            due_date=invoice.due_date,
            notes=invoice.notes,
            billing_name=invoice.billing_name,
            billing_tax_id=invoice.billing_tax_id,
            billing_address=invoice.billing_address,
            billing_email=invoice.billing_email,
            items=tuple(InvoiceItemRecord.from_model(i) for i in invoice.items),
        )


# ---------------------------------------------------------------------------
# Creation result (tagged: new vs existing)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IntegrityWarning:
    """
    The order's recorded total disagrees with the sum of its lines.

    Non-fatal: the invoice is created from its own computed total.
    """

    order_id: UUID
    order_total_cents: int
    computed_total_cents: int

    code: ClassVar[str] = "INTEGRITY_MISMATCH"

    @property
    def difference_cents(self) -> int:
        return self.computed_total_cents - self.order_total_cents

    @property
    def message(self) -> str:
        return (
            f"Order {self.order_id} records total {self.order_total_cents} "
            f"but its lines sum to {self.computed_total_cents}"
        )


class CreateInvoiceStatus(str, Enum):
    """Outcome of create_from_order."""

    CREATED = "created"
    EXISTING = "existing"  # Idempotent success


@dataclass(frozen=True)
class CreateInvoiceResult:
    """Result of create_from_order."""

    status: CreateInvoiceStatus
    invoice: InvoiceRecord
    warning: IntegrityWarning | None = None

    @property
    def created(self) -> bool:
        return self.status is CreateInvoiceStatus.CREATED


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceFilters:
    """Optional predicates for listing invoices and computing stats."""

    statuses: frozenset[InvoiceStatus] | None = None
    client_id: UUID | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = None


@dataclass(frozen=True)
class InvoicePage:
    """One page of an invoice listing."""

    invoices: tuple[InvoiceRecord, ...]
    total: int
    page: int
    per_page: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.per_page - 1) // self.per_page


@dataclass(frozen=True)
class InvoiceStats:
    """
    Counts and amounts over a filtered invoice collection.

    ``total_amount_cents`` excludes cancelled invoices; ``total_invoices``
    includes them, so total_invoices == paid + overdue + pending + cancelled.
    """

    total_invoices: int = 0
    total_amount_cents: int = 0
    paid_count: int = 0
    paid_amount_cents: int = 0
    overdue_count: int = 0
    overdue_amount_cents: int = 0
    pending_count: int = 0
    pending_amount_cents: int = 0
    cancelled_count: int = 0
    cancelled_amount_cents: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total_invoices": self.total_invoices,
            "total_amount_cents": self.total_amount_cents,
            "paid_count": self.paid_count,
            "paid_amount_cents": self.paid_amount_cents,
            "overdue_count": self.overdue_count,
            "overdue_amount_cents": self.overdue_amount_cents,
            "pending_count": self.pending_count,
            "pending_amount_cents": self.pending_amount_cents,
        }
