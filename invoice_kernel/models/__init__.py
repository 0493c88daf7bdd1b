"""ORM models for the invoice kernel."""

from invoice_kernel.models.commerce import Client, Order, OrderLine
from invoice_kernel.models.invoice import Invoice, InvoiceItem

__all__ = [
    "Client",
    "Invoice",
    "InvoiceItem",
    "Order",
    "OrderLine",
]
