"""
Module: invoice_kernel.selectors.invoice_selector
Responsibility: Read-only invoice lookups: by id, by order, by displayed
    number, filtered/paginated listing, and a client's recent invoices.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Returns InvoiceRecord DTOs (with items), never ORM instances.
    - Listing order is newest first, ties broken by invoice number so pages
      are stable.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.sql import Select

from invoice_kernel.domain.dtos import InvoiceFilters, InvoicePage, InvoiceRecord
from invoice_kernel.exceptions import InvoiceNotFoundError
from invoice_kernel.models.invoice import Invoice
from invoice_kernel.selectors.base import BaseSelector

MAX_PER_PAGE = 100


def apply_filters(stmt: Select, filters: InvoiceFilters | None) -> Select:
    """Add the WHERE clauses for ``filters`` to ``stmt`` (shared with stats)."""
    if filters is None:
        return stmt
    if filters.statuses:
        stmt = stmt.where(Invoice.status.in_([s.value for s in filters.statuses]))
    if filters.client_id is not None:
        stmt = stmt.where(Invoice.client_id == filters.client_id)
    if filters.date_from is not None:
        stmt = stmt.where(Invoice.created_at >= filters.date_from)
    if filters.date_to is not None:
        stmt = stmt.where(Invoice.created_at <= filters.date_to)
    if filters.search:
        term = f"%{filters.search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Invoice.display_number).like(term),
                func.lower(Invoice.billing_name).like(term),
            )
        )
    return stmt


class InvoiceSelector(BaseSelector[Invoice]):
    """Read side of the invoice collection."""

    def find_by_id(self, invoice_id: UUID) -> InvoiceRecord | None:
        invoice = self.session.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return InvoiceRecord.from_model(invoice) if invoice else None

    def get_by_id(self, invoice_id: UUID) -> InvoiceRecord:
        """
        Raises:
            InvoiceNotFoundError: No invoice with this id.
        """
        record = self.find_by_id(invoice_id)
        if record is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return record

    def find_by_order(self, order_id: UUID) -> InvoiceRecord | None:
        """Return the invoice for ``order_id`` (there is at most one)."""
        invoice = self.session.execute(
            select(Invoice)
            .where(Invoice.order_id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return InvoiceRecord.from_model(invoice) if invoice else None

    def get_by_number(self, display_number: str) -> InvoiceRecord:
        """
        Look up an invoice by its displayed number, e.g. ``"FAC-12"``.

        Raises:
            InvoiceNotFoundError: No invoice displays this number.
        """
        invoice = self.session.execute(
            select(Invoice).where(Invoice.display_number == display_number)
        ).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(display_number)
        return InvoiceRecord.from_model(invoice)

    def list(
        self,
        filters: InvoiceFilters | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> InvoicePage:
        """
        List invoices matching ``filters``, newest first.

        Args:
            filters: Optional status/client/date/search predicates.
            page: 1-based page number (values below 1 are treated as 1).
            per_page: Page size, clamped to 1..MAX_PER_PAGE.
        """
        page = max(page, 1)
        per_page = min(max(per_page, 1), MAX_PER_PAGE)

        total = self.session.execute(
            apply_filters(select(func.count(Invoice.id)), filters)
        ).scalar_one()

        rows = self.session.execute(
            apply_filters(select(Invoice), filters)
            .order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        ).scalars().all()

        return InvoicePage(
            invoices=tuple(InvoiceRecord.from_model(i) for i in rows),
            total=total,
            page=page,
            per_page=per_page,
        )

    def list_for_client(
        self,
        client_id: UUID,
        limit: int = 10,
    ) -> list[InvoiceRecord]:
        """Most recent invoices billed to ``client_id``."""
        rows = self.session.execute(
            select(Invoice)
            .where(Invoice.client_id == client_id)
            .order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
            .limit(limit)
        ).scalars().all()
        return [InvoiceRecord.from_model(i) for i in rows]
