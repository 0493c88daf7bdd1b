"""
Module: invoice_kernel.selectors.stats_selector
Responsibility: Reporting aggregate over the invoice collection -- counts and
    amounts per status bucket, optionally filtered by client and date range.
Architecture position: Kernel > Selectors.  Pure read; no locking beyond the
    session's normal isolation.

Invariants enforced:
    - total_invoices = paid_count + overdue_count + pending_count
      + cancelled_count (every status falls in exactly one bucket).
    - pending = draft + sent.
    - total_amount_cents sums every non-cancelled invoice; cancelled
      invoices are counted in total_invoices and tracked separately.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from invoice_kernel.domain.dtos import InvoiceFilters, InvoiceStats
from invoice_kernel.domain.lifecycle import PENDING_STATUSES, InvoiceStatus
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.invoice import Invoice
from invoice_kernel.selectors.base import BaseSelector
from invoice_kernel.selectors.invoice_selector import apply_filters

logger = get_logger("selectors.stats")


class InvoiceStatsSelector(BaseSelector[Invoice]):
    """Computes InvoiceStats from a single grouped query."""

    def stats(
        self,
        client_id: UUID | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> InvoiceStats:
        filters = InvoiceFilters(
            client_id=client_id,
            date_from=date_from,
            date_to=date_to,
        )
        stmt = apply_filters(
            select(
                Invoice.status,
                func.count(Invoice.id),
                func.coalesce(func.sum(Invoice.total_cents), 0),
            ),
            filters,
        ).group_by(Invoice.status)

        by_status: dict[InvoiceStatus, tuple[int, int]] = {}
        for status, count, amount in self.session.execute(stmt):
            by_status[InvoiceStatus(status)] = (int(count), int(amount))

        stats = aggregate(by_status)
        logger.debug(
            "invoice_stats_computed",
            extra={
                "client_id": client_id,
                "total_invoices": stats.total_invoices,
            },
        )
        return stats


def aggregate(by_status: dict[InvoiceStatus, tuple[int, int]]) -> InvoiceStats:
    """Fold per-status (count, amount) pairs into the reporting buckets."""

    def bucket(statuses) -> tuple[int, int]:
        count = sum(by_status.get(s, (0, 0))[0] for s in statuses)
        amount = sum(by_status.get(s, (0, 0))[1] for s in statuses)
        return count, amount

    paid = bucket({InvoiceStatus.PAID})
    overdue = bucket({InvoiceStatus.OVERDUE})
    pending = bucket(PENDING_STATUSES)
    cancelled = bucket({InvoiceStatus.CANCELLED})

    return InvoiceStats(
        total_invoices=paid[0] + overdue[0] + pending[0] + cancelled[0],
        total_amount_cents=paid[1] + overdue[1] + pending[1],
        paid_count=paid[0],
        paid_amount_cents=paid[1],
        overdue_count=overdue[0],
        overdue_amount_cents=overdue[1],
        pending_count=pending[0],
        pending_amount_cents=pending[1],
        cancelled_count=cancelled[0],
        cancelled_amount_cents=cancelled[1],
    )
