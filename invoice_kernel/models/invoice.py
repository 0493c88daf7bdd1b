"""
Module: invoice_kernel.models.invoice
Responsibility: ORM persistence for invoices and their line items.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - One invoice per order (UNIQUE constraint uq_invoice_order).  This
      constraint, not an application-level lookup, is what makes
      create_from_order idempotent under concurrency.
    - Displayed number uniqueness: the stored display_number carries its
      own UNIQUE constraint, so a prefix/suffix change can never produce a
      string already issued under another prefix/suffix.
    - total_cents >= 0 and equals the sum of item price_cents * qty
      (computed once by InvoiceService; items are immutable afterwards).
    - Items cascade with their invoice at the database level
      (ON DELETE CASCADE); deleting invoices is itself forbidden by
      db/immutability.py.

Failure modes:
    - IntegrityError on duplicate order_id, number triple or display_number.
    - ImmutabilityViolationError (from db/immutability.py) on any write to a
      write-once column or on delete.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_kernel.db.base import Base, UUIDString
from invoice_kernel.domain.lifecycle import INITIAL_STATUS


class Invoice(Base):
    """
    A sequentially numbered invoice derived from exactly one order.

    Write-once columns: order_id, invoice_number, prefix, suffix,
    display_number, total_cents,
    currency, created_at, client_id and the billing_* snapshot.  Only status,
    due_date and updated_at change after insert (LifecycleService).
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("order_id", name="uq_invoice_order"),
        UniqueConstraint(
            "prefix", "invoice_number", "suffix", name="uq_invoice_number"
        ),
        UniqueConstraint("display_number", name="uq_invoice_display_number"),
        CheckConstraint("total_cents >= 0", name="ck_invoice_total_non_negative"),
        CheckConstraint("invoice_number > 0", name="ck_invoice_number_positive"),
        Index("idx_invoice_client", "client_id"),
        Index("idx_invoice_status", "status"),
        Index("idx_invoice_created", "created_at"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    client_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("clients.id"),
        nullable=True,
    )

    invoice_number: Mapped[int] = mapped_column(nullable=False)
    prefix: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    suffix: Mapped[str] = mapped_column(String(20), nullable=False, default="")

    # prefix + invoice_number + suffix, stored so uniqueness holds across
    # prefix/suffix changes
    display_number: Mapped[str] = mapped_column(String(80), nullable=False)

    total_cents: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=INITIAL_STATUS.value,
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Client billing snapshot taken at creation time
    billing_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    billing_tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    billing_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    billing_email: Mapped[str | None] = mapped_column(String(254), nullable=True)

    items: Mapped[list[InvoiceItem]] = relationship(
        back_populates="invoice",
        order_by="InvoiceItem.position",
        lazy="selectin",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.display_number} order={self.order_id} {self.status}>"


class InvoiceItem(Base):
    """One immutable invoice line, snapshotted from the order."""

    __tablename__ = "invoice_items"

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_invoice_item_qty_positive"),
        CheckConstraint("price_cents >= 0", name="ck_invoice_item_price_non_negative"),
        Index("idx_invoice_item_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Preserves order-line ordering on the rendered document
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    variant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    qty: Mapped[int] = mapped_column(nullable=False)
    price_cents: Mapped[int] = mapped_column(nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="items")

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.qty

    def __repr__(self) -> str:
        return f"<InvoiceItem {self.variant_id} x{self.qty} @ {self.price_cents}>"
