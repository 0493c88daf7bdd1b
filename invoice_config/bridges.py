"""
Config -> Kernel bridges.

Functions that convert an InvoicingConfig into kernel-compatible inputs.
They live in invoice_config (the producer) because the kernel must never
import invoice_config.

Usage:
    from invoice_config.bridges import build_invoice_service, engine_kwargs

    config = get_active_config()
    init_engine_from_url(**engine_kwargs(config))
    with session_scope() as session:
        build_invoice_service(session, config, clock).create_from_order(order_id)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from invoice_config.schema import InvoicingConfig
from invoice_kernel.domain.clock import Clock
from invoice_kernel.services.invoice_service import InvoiceService, InvoicingPolicy
from invoice_kernel.services.sequence_service import SequenceService


def engine_kwargs(config: InvoicingConfig) -> dict[str, Any]:
    """Keyword arguments for ``init_engine_from_url``."""
    return {
        "database_url": config.database.url,
        "echo": config.database.echo,
        "pool_size": config.database.pool_size,
        "max_overflow": config.database.max_overflow,
    }


def to_invoicing_policy(config: InvoicingConfig) -> InvoicingPolicy:
    defaults = config.invoicing
    return InvoicingPolicy(
        currency=defaults.currency,
        payment_terms_days=defaults.payment_terms_days,
        eligible_order_statuses=frozenset(defaults.eligible_order_statuses),
    )


def build_sequence_service(session: Session, config: InvoicingConfig) -> SequenceService:
    return SequenceService(
        session,
        max_attempts=config.allocation.max_attempts,
        backoff_seconds=config.allocation.backoff_seconds,
    )


def build_invoice_service(
    session: Session,
    config: InvoicingConfig,
    clock: Clock | None = None,
) -> InvoiceService:
    """InvoiceService wired with the configured policy and allocator."""
    return InvoiceService(
        session,
        sequence=build_sequence_service(session, config),
        clock=clock,
        policy=to_invoicing_policy(config),
    )


def initialize_counter(session: Session, config: InvoicingConfig) -> bool:
    """Create the counter row from ``numbering`` if it does not exist yet."""
    numbering = config.numbering
    return build_sequence_service(session, config).initialize(
        prefix=numbering.prefix,
        suffix=numbering.suffix,
        start_number=numbering.start_number,
    )
