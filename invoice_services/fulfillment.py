"""
invoice_services.fulfillment -- invoicing workflow for delivered orders.

Responsibility:
    Wires the kernel services from configuration and runs the full
    invoicing flow for an order: create the invoice in its own transaction,
    then render it and send it to the client.  Also the facade used by
    admin tooling for transitions, lookups, listings and stats.

Architecture position:
    Services -- orchestration over the kernel.  The only layer that owns
    transaction boundaries (``session_scope``) and the only one that talks to
    the renderer and dispatcher.

Invariants enforced:
    - Creation commits before any rendering or sending starts.  Render or
      send failures are logged (``pdf_render_failed``,
      ``invoice_email_failed``) and reported; they never roll back the
      invoice, are not retried here and never re-trigger creation.
    - An order that was already invoiced is not delivered again by
      ``invoice_order``; use ``resend`` for that.
    - With ``invoicing.auto_send`` enabled, a successful send moves a DRAFT
      invoice to SENT in a separate transaction.

Usage:
    workflow = InvoicingWorkflow(
        config=get_active_config(),
        renderer=renderer,
        dispatcher=dispatcher,
    )
    report = workflow.invoice_order(order_id)
    if report.errors:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from invoice_config.bridges import build_invoice_service
from invoice_config.schema import InvoicingConfig
from invoice_kernel.db.engine import session_scope
from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.dtos import (
    CreateInvoiceResult,
    InvoiceFilters,
    InvoicePage,
    InvoiceRecord,
    InvoiceStats,
)
from invoice_kernel.domain.lifecycle import InvoiceStatus
from invoice_kernel.exceptions import InvoicingError
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.selectors.invoice_selector import InvoiceSelector
from invoice_kernel.selectors.stats_selector import InvoiceStatsSelector
from invoice_kernel.services.lifecycle_service import LifecycleService
from invoice_services.collaborators import DocumentRenderer, NotificationDispatcher

logger = get_logger("services.fulfillment")


@dataclass(frozen=True)
class DeliveryReport:
    """What happened to one invoice after creation."""

    invoice: InvoiceRecord
    created: bool
    rendered: bool = False
    sent: bool = False
    render_error: str | None = None
    send_error: str | None = None
    creation: CreateInvoiceResult | None = None

    @property
    def errors(self) -> tuple[str, ...]:
        return tuple(e for e in (self.render_error, self.send_error) if e)


class InvoicingWorkflow:
    """
    Invoice creation plus post-commit delivery.

    Contract:
        Each public method opens and closes its own transaction(s) through
        ``session_scope``.  Kernel errors (not found, not eligible, invalid
        transition, ...) propagate unchanged.

    Non-goals:
        - Does NOT retry failed deliveries; callers schedule ``resend``.
    """

    def __init__(
        self,
        config: InvoicingConfig,
        renderer: DocumentRenderer | None = None,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ):
        self._config = config
        self._renderer = renderer
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_invoice(
        self,
        order_id: UUID,
        client_id: UUID | None = None,
        due_date: datetime | None = None,
        notes: str | None = None,
    ) -> CreateInvoiceResult:
        """Create (or return) the invoice for an order, without delivery."""
        with session_scope(self._session_factory) as session:
            service = build_invoice_service(session, self._config, self._clock)
            return service.create_from_order(
                order_id,
                client_id=client_id,
                due_date=due_date,
                notes=notes,
            )

    def invoice_order(
        self,
        order_id: UUID,
        client_id: UUID | None = None,
        due_date: datetime | None = None,
        notes: str | None = None,
    ) -> DeliveryReport:
        """
        Delivery trigger: create the invoice, then render and send it.

        Raises:
            Any kernel error from creation.  Delivery problems are reported
            on the returned DeliveryReport instead.
        """
        with LogContext.bind(order_id=str(order_id)):
            result = self.create_invoice(order_id, client_id, due_date, notes)
            if not result.created:
                return DeliveryReport(
                    invoice=result.invoice,
                    created=False,
                    creation=result,
                )
            report = self._deliver(result.invoice)
            return DeliveryReport(
                invoice=report.invoice,
                created=True,
                rendered=report.rendered,
                sent=report.sent,
                render_error=report.render_error,
                send_error=report.send_error,
                creation=result,
            )

    def resend(self, invoice_id: UUID) -> DeliveryReport:
        """Render and send an existing invoice again."""
        invoice = self.get_invoice(invoice_id)
        with LogContext.bind(order_id=str(invoice.order_id)):
            return self._deliver(invoice)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _deliver(self, invoice: InvoiceRecord) -> DeliveryReport:
        with LogContext.bind(invoice_id=str(invoice.id)):
            if self._renderer is None:
                logger.info("invoice_delivery_skipped", extra={"reason": "no renderer"})
                return DeliveryReport(invoice=invoice, created=False)

            try:
                document = self._renderer.render(
                    invoice, invoice.items, self._config.company
                )
            except Exception as e:
                logger.error(
                    "pdf_render_failed",
                    extra={"invoice_number": invoice.display_number},
                    exc_info=True,
                )
                return DeliveryReport(
                    invoice=invoice,
                    created=False,
                    render_error=f"{type(e).__name__}: {e}",
                )

            if self._dispatcher is None:
                logger.info("invoice_delivery_skipped", extra={"reason": "no dispatcher"})
                return DeliveryReport(invoice=invoice, created=False, rendered=True)

            send_error = None
            try:
                sent = bool(self._dispatcher.send(invoice, document))
                if not sent:
                    send_error = "dispatcher rejected the message"
            except Exception as e:
                sent = False
                send_error = f"{type(e).__name__}: {e}"

            if not sent:
                logger.error(
                    "invoice_email_failed",
                    extra={
                        "invoice_number": invoice.display_number,
                        "recipient": invoice.billing_email,
                        "error": send_error,
                    },
                )
                return DeliveryReport(
                    invoice=invoice,
                    created=False,
                    rendered=True,
                    send_error=send_error,
                )

            logger.info(
                "invoice_email_sent",
                extra={
                    "invoice_number": invoice.display_number,
                    "recipient": invoice.billing_email,
                },
            )
            if self._config.invoicing.auto_send and invoice.status is InvoiceStatus.DRAFT:
                invoice = self._mark_sent_after_delivery(invoice)

            return DeliveryReport(invoice=invoice, created=False, rendered=True, sent=True)

    def _mark_sent_after_delivery(self, invoice: InvoiceRecord) -> InvoiceRecord:
        try:
            return self.transition(
                invoice.id,
                InvoiceStatus.SENT,
                expected_status=InvoiceStatus.DRAFT,
            )
        except InvoicingError as e:
            # Someone else moved the invoice first; the email still went out.
            logger.warning(
                "invoice_auto_send_transition_skipped",
                extra={"error_code": e.code, "error": str(e)},
            )
            return self.get_invoice(invoice.id)

    # ------------------------------------------------------------------
    # Lifecycle and queries
    # ------------------------------------------------------------------

    def transition(
        self,
        invoice_id: UUID,
        target_status: InvoiceStatus,
        expected_status: InvoiceStatus | None = None,
    ) -> InvoiceRecord:
        with session_scope(self._session_factory) as session:
            return LifecycleService(session, self._clock).transition(
                invoice_id,
                target_status,
                expected_status=expected_status,
            )

    def update_due_date(self, invoice_id: UUID, due_date: datetime | None) -> InvoiceRecord:
        with session_scope(self._session_factory) as session:
            return LifecycleService(session, self._clock).update_due_date(
                invoice_id, due_date
            )

    def get_invoice(self, invoice_id: UUID) -> InvoiceRecord:
        with session_scope(self._session_factory) as session:
            return InvoiceSelector(session).get_by_id(invoice_id)

    def get_invoice_by_number(self, display_number: str) -> InvoiceRecord:
        with session_scope(self._session_factory) as session:
            return InvoiceSelector(session).get_by_number(display_number)

    def list_invoices(
        self,
        filters: InvoiceFilters | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> InvoicePage:
        with session_scope(self._session_factory) as session:
            return InvoiceSelector(session).list(filters, page=page, per_page=per_page)

    def list_client_invoices(self, client_id: UUID, limit: int = 10) -> list[InvoiceRecord]:
        with session_scope(self._session_factory) as session:
            return InvoiceSelector(session).list_for_client(client_id, limit=limit)

    def stats(
        self,
        client_id: UUID | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> InvoiceStats:
        with session_scope(self._session_factory) as session:
            return InvoiceStatsSelector(session).stats(
                client_id=client_id,
                date_from=date_from,
                date_to=date_to,
            )
