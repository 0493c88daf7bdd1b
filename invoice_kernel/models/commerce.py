"""
Module: invoice_kernel.models.commerce
Responsibility: Read-only mirror of the commerce tables the invoicing core
    consumes: clients, orders and order lines.
Architecture position: Kernel > Models.  The storefront owns these rows;
    the invoicing core only reads them (through selectors/order_selector.py)
    and never writes them outside test fixtures and seed scripts.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_kernel.db.base import Base, UUIDString


class Client(Base):
    """Billing identity referenced by orders and invoices."""

    __tablename__ = "clients"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    company_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email: Mapped[str | None] = mapped_column(String(254), nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    address_line1: Mapped[str | None] = mapped_column(String(200), nullable=True)
    address_line2: Mapped[str | None] = mapped_column(String(200), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)

    @property
    def display_name(self) -> str:
        if self.company_name:
            return self.company_name
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def billing_address(self) -> str | None:
        locality = " ".join(p for p in (self.postal_code, self.city) if p)
        parts = [
            p for p in (
                self.address_line1,
                self.address_line2,
                locality,
                self.region,
            )
            if p
        ]
        return ", ".join(parts) if parts else None


class Order(Base):
    """A storefront order; invoiceable once it reaches a fulfilled status."""

    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_order_status", "status"),
    )

    client_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("clients.id"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    total_cents: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    shipping_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list[OrderLine]] = relationship(
        back_populates="order",
        order_by="OrderLine.position",
        lazy="selectin",
    )


class OrderLine(Base):
    """An order line with the unit price charged at order time."""

    __tablename__ = "order_lines"

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    variant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    qty: Mapped[int] = mapped_column(nullable=False)
    price_cents: Mapped[int] = mapped_column(nullable=False)

    order: Mapped[Order] = relationship(back_populates="lines")
