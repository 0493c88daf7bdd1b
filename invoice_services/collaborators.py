"""
Ports for the external collaborators the invoicing workflow calls after an
invoice has been committed: the document renderer and the notification
dispatcher.

Both are invoked strictly after creation; their failures are reported on
the DeliveryReport and never roll back or re-trigger invoice creation.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from invoice_config.schema import CompanySettings
from invoice_kernel.domain.dtos import InvoiceItemRecord, InvoiceRecord


@runtime_checkable
class DocumentRenderer(Protocol):
    """Renders an invoice (with its items) into a PDF document."""

    def render(
        self,
        invoice: InvoiceRecord,
        items: tuple[InvoiceItemRecord, ...],
        company: CompanySettings,
    ) -> bytes:
        ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    """
    Sends a rendered invoice to the billed client.

    Returns True when the message was accepted for delivery.
    """

    def send(self, invoice: InvoiceRecord, document: bytes) -> bool:
        ...
