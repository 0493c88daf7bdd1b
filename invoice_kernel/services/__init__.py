"""Write-side services for the invoice kernel."""

from invoice_kernel.services.invoice_service import InvoiceService, InvoicingPolicy
from invoice_kernel.services.lifecycle_service import LifecycleService
from invoice_kernel.services.sequence_service import InvoiceCounter, SequenceService

__all__ = [
    "InvoiceCounter",
    "InvoiceService",
    "InvoicingPolicy",
    "LifecycleService",
    "SequenceService",
]
