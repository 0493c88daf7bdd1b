"""Orchestration over the invoice kernel: fulfillment workflow and periodic jobs."""

from invoice_services.collaborators import DocumentRenderer, NotificationDispatcher
from invoice_services.fulfillment import DeliveryReport, InvoicingWorkflow
from invoice_services.overdue_sweep import run_overdue_sweep

__all__ = [
    "DeliveryReport",
    "DocumentRenderer",
    "InvoicingWorkflow",
    "NotificationDispatcher",
    "run_overdue_sweep",
]
