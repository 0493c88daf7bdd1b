"""Selectors for the invoice kernel (read side)."""

from invoice_kernel.selectors.invoice_selector import InvoiceSelector
from invoice_kernel.selectors.order_selector import ClientSelector, OrderSelector
from invoice_kernel.selectors.stats_selector import InvoiceStatsSelector

__all__ = [
    "ClientSelector",
    "InvoiceSelector",
    "InvoiceStatsSelector",
    "OrderSelector",
]
