"""
Configuration loader (``invoice_config.loader``).

Responsibility
--------------
Reads one YAML file and parses it into the frozen ``invoice_config.schema``
dataclasses.  Runtime callers go through ``invoice_config.get_active_config()``;
this module is exposed for tests and tooling that need to parse an
in-memory mapping.

Invariants enforced
-------------------
* Required keys (``database.url``, ``company.name``) have no silent default.
* Every value is type-checked; a wrong type or out-of-range value raises
  ``ConfigError`` naming the dotted key.
* Unknown top-level sections are rejected so typos do not go unnoticed.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid key  -> ``ConfigError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from invoice_config.schema import (
    AllocationSettings,
    CompanySettings,
    DatabaseSettings,
    InvoiceDefaults,
    InvoicingConfig,
    NumberingSettings,
)
from invoice_kernel.domain.numbering import affix_error
from invoice_kernel.exceptions import ConfigError

KNOWN_SECTIONS = frozenset(
    {"database", "numbering", "invoicing", "allocation", "company"}
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(str(path), "top level must be a mapping")
    return data


def _section(data: dict[str, Any], name: str, required: bool = False) -> dict[str, Any]:
    if name not in data or data[name] is None:
        if required:
            raise ConfigError(name, "section is required")
        return {}
    value = data[name]
    if not isinstance(value, dict):
        raise ConfigError(name, "must be a mapping")
    return value


def _require(section: dict[str, Any], key: str, dotted: str) -> Any:
    if section.get(key) in (None, ""):
        raise ConfigError(dotted, "is required")
    return section[key]


def _typed(value: Any, expected: type | tuple[type, ...], dotted: str) -> Any:
    # bool is an int subclass; never accept it where a number is expected
    if isinstance(value, bool) and bool not in (
        expected if isinstance(expected, tuple) else (expected,)
    ):
        raise ConfigError(dotted, f"expected {expected}, got bool")
    if not isinstance(value, expected):
        raise ConfigError(dotted, f"expected {expected}, got {type(value).__name__}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    defaults = DatabaseSettings(url="")
    return DatabaseSettings(
        url=_typed(_require(data, "url", "database.url"), str, "database.url"),
        echo=_typed(data.get("echo", defaults.echo), bool, "database.echo"),
        pool_size=_typed(
            data.get("pool_size", defaults.pool_size), int, "database.pool_size"
        ),
        max_overflow=_typed(
            data.get("max_overflow", defaults.max_overflow), int, "database.max_overflow"
        ),
    )


def parse_numbering(data: dict[str, Any]) -> NumberingSettings:
    defaults = NumberingSettings()
    start = _typed(
        data.get("start_number", defaults.start_number), int, "numbering.start_number"
    )
    if start < 1:
        raise ConfigError("numbering.start_number", "must be >= 1")
    prefix = _typed(data.get("prefix", defaults.prefix) or "", str, "numbering.prefix")
    suffix = _typed(data.get("suffix", defaults.suffix) or "", str, "numbering.suffix")
    reason = affix_error(prefix, suffix)
    if reason is not None:
        raise ConfigError("numbering", reason)
    return NumberingSettings(prefix=prefix, suffix=suffix, start_number=start)


def parse_invoicing(data: dict[str, Any]) -> InvoiceDefaults:
    defaults = InvoiceDefaults()

    currency = _typed(data.get("currency", defaults.currency), str, "invoicing.currency")
    if len(currency) != 3 or not currency.isalpha():
        raise ConfigError("invoicing.currency", "must be a 3-letter ISO 4217 code")

    terms = data.get("payment_terms_days", defaults.payment_terms_days)
    if terms is not None:
        _typed(terms, int, "invoicing.payment_terms_days")
        if terms < 0:
            raise ConfigError("invoicing.payment_terms_days", "must be >= 0")

    statuses = data.get("eligible_order_statuses", list(defaults.eligible_order_statuses))
    if isinstance(statuses, str):
        statuses = [statuses]
    _typed(statuses, list, "invoicing.eligible_order_statuses")
    if not statuses:
        raise ConfigError("invoicing.eligible_order_statuses", "must not be empty")

    return InvoiceDefaults(
        currency=currency.upper(),
        payment_terms_days=terms,
        eligible_order_statuses=tuple(str(s).strip().lower() for s in statuses),
        auto_send=_typed(data.get("auto_send", defaults.auto_send), bool, "invoicing.auto_send"),
    )


def parse_allocation(data: dict[str, Any]) -> AllocationSettings:
    defaults = AllocationSettings()
    attempts = _typed(
        data.get("max_attempts", defaults.max_attempts), int, "allocation.max_attempts"
    )
    if attempts < 1:
        raise ConfigError("allocation.max_attempts", "must be >= 1")
    backoff = _typed(
        data.get("backoff_seconds", defaults.backoff_seconds),
        (int, float),
        "allocation.backoff_seconds",
    )
    if backoff < 0:
        raise ConfigError("allocation.backoff_seconds", "must be >= 0")
    return AllocationSettings(max_attempts=attempts, backoff_seconds=float(backoff))


def parse_company(data: dict[str, Any]) -> CompanySettings:
    def optional(key: str) -> str | None:
        value = data.get(key)
        return None if value is None else str(value)

    return CompanySettings(
        name=str(_require(data, "name", "company.name")),
        tax_id=optional("tax_id"),
        address=optional("address"),
        phone=optional("phone"),
        email=optional("email"),
        website=optional("website"),
    )


def parse_config(data: dict[str, Any], source: str | None = None) -> InvoicingConfig:
    """
    Parse a configuration mapping into an ``InvoicingConfig``.

    Raises:
        ConfigError: unknown section, missing required key or bad value.
    """
    unknown = set(data) - KNOWN_SECTIONS
    if unknown:
        raise ConfigError(", ".join(sorted(unknown)), "unknown configuration section")

    return InvoicingConfig(
        database=parse_database(_section(data, "database", required=True)),
        company=parse_company(_section(data, "company", required=True)),
        numbering=parse_numbering(_section(data, "numbering")),
        invoicing=parse_invoicing(_section(data, "invoicing")),
        allocation=parse_allocation(_section(data, "allocation")),
        source=source,
    )


def load_config_file(path: Path) -> InvoicingConfig:
    """Load and parse one configuration file."""
    return parse_config(load_yaml_file(path), source=str(path))
