"""
invoice_config -- single public entrypoint for invoicing configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``InvoicingConfig``.

Architecture position:
    Configuration.  Sits above ``invoice_kernel`` and below
    ``invoice_services``.  The kernel never imports from ``invoice_config``;
    ``bridges`` translate the configuration into kernel inputs.

Resolution order for the configuration file:
    1. ``path`` argument
    2. ``INVOICING_CONFIG`` environment variable
    3. ``invoice_config/sets/default.yaml``

``DATABASE_URL``, when set, overrides ``database.url`` from the file.

Failure modes:
    - ``FileNotFoundError`` -- the selected file does not exist.
    - ``ConfigError`` -- a required key is missing or a value is invalid.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from invoice_config.loader import load_config_file, parse_config
from invoice_config.schema import (
    AllocationSettings,
    CompanySettings,
    DatabaseSettings,
    InvoiceDefaults,
    InvoicingConfig,
    NumberingSettings,
)
from invoice_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "INVOICING_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> InvoicingConfig:
    """
    The public configuration entrypoint.

    Args:
        path: Explicit configuration file.  Falls back to
            ``$INVOICING_CONFIG`` and then to the shipped default set.

    Returns:
        InvoicingConfig, with ``database.url`` replaced by ``$DATABASE_URL``
        when that variable is set.

    Raises:
        FileNotFoundError: The configuration file does not exist.
        ConfigError: The file fails validation.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config = load_config_file(Path(path))

    database_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if database_url:
        config = dataclasses.replace(
            config,
            database=dataclasses.replace(config.database, url=database_url),
        )

    _logger.info(
        "invoicing_config_loaded",
        extra={
            "source": config.source,
            "dialect": config.database.url.split(":", 1)[0],
            "prefix": config.numbering.prefix,
            "currency": config.invoicing.currency,
            "auto_send": config.invoicing.auto_send,
        },
    )
    return config


__all__ = [
    "AllocationSettings",
    "CompanySettings",
    "DatabaseSettings",
    "InvoiceDefaults",
    "InvoicingConfig",
    "NumberingSettings",
    "get_active_config",
    "parse_config",
]
