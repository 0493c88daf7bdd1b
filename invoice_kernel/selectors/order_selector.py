"""
Read access to the commerce collaborators: the Order store and Client store.

InvoiceService reads orders and clients only through these selectors, at
creation time, and turns them into frozen snapshots immediately so later
catalog or profile edits never reach a finalized invoice.
"""

from uuid import UUID

from sqlalchemy import select

from invoice_kernel.domain.dtos import ClientSnapshot, OrderSnapshot
from invoice_kernel.exceptions import ClientNotFoundError, OrderNotFoundError
from invoice_kernel.models.commerce import Client, Order
from invoice_kernel.selectors.base import BaseSelector


class OrderSelector(BaseSelector[Order]):
    """Order store: ``get_order(id)`` with its line items."""

    def find_order(self, order_id: UUID) -> OrderSnapshot | None:
        order = self.session.execute(
            select(Order).where(Order.id == order_id)
        ).scalar_one_or_none()
        return OrderSnapshot.from_model(order) if order else None

    def get_order(self, order_id: UUID) -> OrderSnapshot:
        """
        Raises:
            OrderNotFoundError: No order with this id.
        """
        snapshot = self.find_order(order_id)
        if snapshot is None:
            raise OrderNotFoundError(str(order_id))
        return snapshot


class ClientSelector(BaseSelector[Client]):
    """Client store: ``get_client(id)`` billing profile."""

    def find_client(self, client_id: UUID) -> ClientSnapshot | None:
        client = self.session.get(Client, client_id)
        return ClientSnapshot.from_model(client) if client else None

    def get_client(self, client_id: UUID) -> ClientSnapshot:
        """
        Raises:
            ClientNotFoundError: No client with this id.
        """
        snapshot = self.find_client(client_id)
        if snapshot is None:
            raise ClientNotFoundError(str(client_id))
        return snapshot
