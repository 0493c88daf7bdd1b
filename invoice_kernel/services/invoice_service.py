"""
InvoiceService -- derives one numbered invoice from one fulfilled order.

Responsibility:
    Validates that an order is invoiceable, snapshots its lines and the
    client's billing profile, allocates the next invoice number, and
    persists the invoice with its items -- all inside the caller's
    transaction.  Re-invoking it for an already-invoiced order returns the
    existing invoice.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by invoice_services.fulfillment.InvoicingWorkflow (delivery
    trigger, admin action) inside ``session_scope()``.

Invariants enforced:
    - At most one invoice per order.  The UNIQUE constraint on
      ``invoices.order_id`` is the source of truth; the lookup before
      allocation only avoids needless work.  A constraint violation on
      insert is resolved by returning the invoice that won the race.
    - One allocation per created invoice.  Allocation and insert share a
      savepoint: if the insert is rejected, the counter increment is rolled
      back with it, so a lost race never burns a number.
    - total_cents == sum(price_cents * qty) over the snapshotted items.
    - Items and billing fields are copied, never referenced, so catalog or
      profile edits cannot alter a finalized invoice.

Failure modes:
    - OrderNotFoundError / ClientNotFoundError: unknown ids.
    - OrderNotEligibleError: order not in an eligible status.  Raised before
      allocation; the counter is untouched.
    - AllocationConflictError: propagated from SequenceService.
    - PersistenceConflictError: insert rejected and no existing invoice
      for the order could be found, e.g. the displayed number was already
      issued under an earlier prefix/suffix.  The allocation is rolled back
      with the savepoint.
    - Integrity mismatch (order total != line sum) is NOT an error: the
      result carries an IntegrityWarning and the invoice uses its own total.

Audit relevance:
    invoice_created / invoice_already_exists / order_total_mismatch are
    logged with order_id, invoice_id and the displayed number.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.dtos import (
    AllocatedNumber,
    ClientSnapshot,
    CreateInvoiceResult,
    CreateInvoiceStatus,
    IntegrityWarning,
    InvoiceRecord,
    OrderSnapshot,
)
from invoice_kernel.domain.lifecycle import INITIAL_STATUS
from invoice_kernel.exceptions import (
    OrderNotEligibleError,
    PersistenceConflictError,
)
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.models.invoice import Invoice, InvoiceItem
from invoice_kernel.selectors.invoice_selector import InvoiceSelector
from invoice_kernel.selectors.order_selector import ClientSelector, OrderSelector
from invoice_kernel.services.base import BaseService
from invoice_kernel.services.sequence_service import SequenceService

logger = get_logger("services.invoice")


@dataclass(frozen=True)
class InvoicingPolicy:
    """
    Kernel-side invoicing settings.

    invoice_config translates the YAML configuration into this; the kernel
    never reads configuration files itself.
    """

    currency: str = "EUR"
    payment_terms_days: int | None = 30
    eligible_order_statuses: frozenset[str] = field(
        default_factory=lambda: frozenset({"delivered"})
    )

    def is_eligible(self, order_status: str) -> bool:
        return order_status.strip().lower() in self.eligible_order_statuses


class InvoiceService(BaseService[Invoice]):
    """
    Invoice derivation engine.

    Contract:
        ``create_from_order(order_id, client_id=None)`` returns a
        ``CreateInvoiceResult`` tagged CREATED (new invoice, status draft)
        or EXISTING (the order was already invoiced).

    Guarantees:
        - Idempotent under concurrency: M concurrent calls for the same order
          converge on one persisted invoice and all return it.
        - Never leaves a numbered but unpersisted invoice: allocation and
          insert commit or roll back together with the caller's transaction.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT render PDFs or send email (invoice_services does).
    """

    def __init__(
        self,
        session: Session,
        sequence: SequenceService | None = None,
        clock: Clock | None = None,
        policy: InvoicingPolicy | None = None,
    ):
        super().__init__(session)
        self._sequence = sequence or SequenceService(session)
        self._clock = clock or SystemClock()
        self._policy = policy or InvoicingPolicy()
        self._orders = OrderSelector(session)
        self._clients = ClientSelector(session)
        self._invoices = InvoiceSelector(session)

    def create_from_order(
        self,
        order_id: UUID,
        client_id: UUID | None = None,
        due_date: datetime | None = None,
        notes: str | None = None,
    ) -> CreateInvoiceResult:
        """
        Create the invoice for ``order_id``, or return the one that exists.

        Steps:
            1. Read the order and check it is eligible.
            2. Return the existing invoice if the order is already invoiced.
            3. Snapshot lines and client billing profile.
            4. In one savepoint: allocate a number, insert invoice + items.
            5. On a uniqueness rejection, return the invoice that won.

        Args:
            order_id: Order to invoice.
            client_id: Client to bill.  Defaults to the order's client;
                may be None for guest orders.
            due_date: Explicit due date.  Defaults to creation time plus the
                policy's payment terms.
            notes: Free text printed on the invoice.

        Raises:
            OrderNotFoundError, ClientNotFoundError, OrderNotEligibleError,
            AllocationConflictError, PersistenceConflictError.
        """
        with LogContext.bind(order_id=str(order_id)):
            order = self._orders.get_order(order_id)
            if not self._policy.is_eligible(order.status):
                logger.info(
                    "order_not_eligible",
                    extra={"order_status": order.status},
                )
                raise OrderNotEligibleError(str(order_id), order.status)

            existing = self._invoices.find_by_order(order_id)
            if existing is not None:
                return self._existing(existing, reason="lookup")

            billed_client_id = client_id if client_id is not None else order.client_id
            client = (
                self._clients.get_client(billed_client_id)
                if billed_client_id is not None
                else None
            )

            warning = self._check_order_total(order)
            return self._insert(order, client, due_date, notes, warning)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert(
        self,
        order: OrderSnapshot,
        client: ClientSnapshot | None,
        due_date: datetime | None,
        notes: str | None,
        warning: IntegrityWarning | None,
    ) -> CreateInvoiceResult:
        savepoint = self.session.begin_nested()
        try:
            allocated = self._sequence.allocate()
            invoice = self._build_invoice(order, client, allocated, due_date, notes)
            self.session.add(invoice)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            # Another transaction invoiced this order first.  Rolling back the
            # savepoint also rolls back this allocation.
            savepoint.rollback()
            logger.warning(
                "invoice_insert_conflict",
                extra={"detail": str(exc.orig)},
            )
            existing = self._invoices.find_by_order(order.order_id)
            if existing is None:
                raise PersistenceConflictError(
                    str(order.order_id), str(exc.orig)
                ) from exc
            return self._existing(existing, reason="constraint")

        record = InvoiceRecord.from_model(invoice)
        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(record.id),
                "invoice_number": record.display_number,
                "total_cents": record.total_cents,
                "currency": record.currency,
                "item_count": len(record.items),
                "client_id": str(record.client_id) if record.client_id else None,
                "integrity_warning": warning is not None,
            },
        )
        return CreateInvoiceResult(
            status=CreateInvoiceStatus.CREATED,
            invoice=record,
            warning=warning,
        )

    def _build_invoice(
        self,
        order: OrderSnapshot,
        client: ClientSnapshot | None,
        allocated: AllocatedNumber,
        due_date: datetime | None,
        notes: str | None,
    ) -> Invoice:
        now = self._clock.now()
        if due_date is None and self._policy.payment_terms_days is not None:
            due_date = now + timedelta(days=self._policy.payment_terms_days)

        items = [
            InvoiceItem(
                position=position,
                variant_id=line.variant_id,
                qty=line.qty,
                price_cents=line.price_cents,
            )
            for position, line in enumerate(order.lines)
        ]

        return Invoice(
            order_id=order.order_id,
            client_id=client.client_id if client else None,
            invoice_number=allocated.number,
            prefix=allocated.prefix,
            suffix=allocated.suffix,
            display_number=allocated.display,
            total_cents=sum(item.line_total_cents for item in items),
            currency=self._policy.currency,
            status=INITIAL_STATUS.value,
            created_at=now,
            updated_at=now,
            due_date=due_date,
            notes=notes,
            billing_name=client.name if client else None,
            billing_tax_id=client.tax_id if client else None,
            billing_address=client.address if client else None,
            billing_email=client.email if client else None,
            items=items,
        )

    def _check_order_total(self, order: OrderSnapshot) -> IntegrityWarning | None:
        computed = order.computed_total_cents
        if computed == order.total_cents:
            return None
        warning = IntegrityWarning(
            order_id=order.order_id,
            order_total_cents=order.total_cents,
            computed_total_cents=computed,
        )
        logger.warning(
            "order_total_mismatch",
            extra={
                "order_total_cents": order.total_cents,
                "computed_total_cents": computed,
                "difference_cents": warning.difference_cents,
            },
        )
        return warning

    def _existing(self, record: InvoiceRecord, reason: str) -> CreateInvoiceResult:
        logger.info(
            "invoice_already_exists",
            extra={
                "invoice_id": str(record.id),
                "invoice_number": record.display_number,
                "resolved_by": reason,
            },
        )
        return CreateInvoiceResult(
            status=CreateInvoiceStatus.EXISTING,
            invoice=record,
        )
