"""
ledger_config -- single public entrypoint for process configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Resolution order:
    1. The ``path`` argument.
    2. The ``SALES_LEDGER_CONFIG`` environment variable.
    3. The packaged ``defaults.yaml``.

    ``DATABASE_URL``, when set, replaces ``database.url`` whichever file
    was used.

Failure modes:
    - ``FileNotFoundError`` -- the chosen file does not exist.
    - ``ValueError`` -- a value fails validation.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from ledger_config.loader import load_config
from ledger_config.schema import (
    CurrencyDefaults,
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    RateProviderConfig,
    SchedulerConfig,
    SupportedCurrencyDef,
)

_logger = logging.getLogger("ledger_kernel.config")

CONFIG_ENV_VAR = "SALES_LEDGER_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: str | Path | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Explicit configuration file.  Falls back to
            ``SALES_LEDGER_CONFIG`` and then the packaged defaults.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    chosen = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    config = load_config(chosen)

    database_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if database_url:
        config = dataclasses.replace(
            config,
            database=dataclasses.replace(config.database, url=database_url),
        )

    _logger.info(
        "config_loaded",
        extra={
            "config_source": config.source,
            "base_currency": config.currency.base_currency,
            "providers": list(config.rates.providers),
            "scheduler_enabled": config.scheduler.enabled,
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "CurrencyDefaults",
    "DATABASE_URL_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "LedgerConfig",
    "LoggingConfig",
    "RateProviderConfig",
    "SchedulerConfig",
    "SupportedCurrencyDef",
    "get_active_config",
]
