"""
Configuration schema -- frozen dataclasses for the invoicing configuration.

Hierarchy:
  InvoicingConfig          = the whole configuration file
    DatabaseSettings       = engine URL and pool sizing
    NumberingSettings      = counter prefix / suffix / first number
    InvoiceDefaults        = currency, payment terms, eligibility, auto_send
    AllocationSettings     = compare-and-set retry bound and backoff
    CompanySettings        = issuer details printed on the rendered invoice

All dataclasses are frozen.  Defaults here mirror sets/default.yaml so that
an omitted optional section behaves exactly like the shipped file.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    """Engine settings passed to init_engine_from_url()."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class NumberingSettings:
    """Counter row contents used when the counter is first initialized."""

    prefix: str = "FAC-"
    suffix: str = ""
    start_number: int = 1


@dataclass(frozen=True)
class InvoiceDefaults:
    currency: str = "EUR"
    payment_terms_days: int | None = 30
    eligible_order_statuses: tuple[str, ...] = ("delivered",)
    auto_send: bool = False


@dataclass(frozen=True)
class AllocationSettings:
    max_attempts: int = 5
    backoff_seconds: float = 0.01


@dataclass(frozen=True)
class CompanySettings:
    """Issuer block for the invoice document."""

    name: str
    tax_id: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None


@dataclass(frozen=True)
class InvoicingConfig:
    """Root configuration object returned by get_active_config()."""

    database: DatabaseSettings
    company: CompanySettings
    numbering: NumberingSettings = field(default_factory=NumberingSettings)
    invoicing: InvoiceDefaults = field(default_factory=InvoiceDefaults)
    allocation: AllocationSettings = field(default_factory=AllocationSettings)
    source: str | None = None
