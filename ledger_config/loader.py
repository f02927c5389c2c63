"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into the typed
``ledger_config.schema`` dataclasses.  Runtime callers go through
``ledger_config.get_active_config()``; the parse functions are public for
tests and tooling.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Invalid values raise ``ValueError`` naming the offending key; missing
  optional sections fall back to the schema defaults.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid value (unknown currency, provider or frequency, non-positive
  timing)  -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    CurrencyDefaults,
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    RateProviderConfig,
    SchedulerConfig,
    SupportedCurrencyDef,
)
from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_rates.providers.registry import PROVIDER_REGISTRY

_FREQUENCIES = ("hourly", "daily", "weekly")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' must be a mapping")
    return value


def _positive(value: Any, key: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{key}' must be a number, got {value!r}") from exc
    if number <= 0:
        raise ValueError(f"'{key}' must be positive, got {value!r}")
    return number


def _currency_code(value: Any, key: str) -> str:
    if not isinstance(value, str) or not CurrencyRegistry.is_valid(value.upper()):
        raise ValueError(f"'{key}' is not a known ISO 4217 code: {value!r}")
    return value.upper()


def _provider_key(value: Any, key: str) -> str:
    if value not in PROVIDER_REGISTRY:
        raise ValueError(
            f"'{key}' must be one of {sorted(PROVIDER_REGISTRY)}, got {value!r}"
        )
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=str(data.get("url", defaults.url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
        pool_timeout=int(data.get("pool_timeout", defaults.pool_timeout)),
        sqlite_busy_timeout=_positive(
            data.get("sqlite_busy_timeout", defaults.sqlite_busy_timeout),
            "database.sqlite_busy_timeout",
        ),
    )


def parse_supported_currency(data: dict[str, Any]) -> SupportedCurrencyDef:
    """Parse one ``currency.supported_currencies`` item."""
    code = _currency_code(data.get("code"), "currency.supported_currencies.code")
    raw_rate = data.get("exchange_rate", "1")
    try:
        rate = Decimal(str(raw_rate))
    except InvalidOperation as exc:
        raise ValueError(f"{code}: exchange_rate is not a number: {raw_rate!r}") from exc
    if not rate.is_finite() or rate <= 0:
        raise ValueError(f"{code}: exchange_rate must be positive, got {raw_rate!r}")
    return SupportedCurrencyDef(
        code=code,
        name=data.get("name"),
        symbol=data.get("symbol"),
        exchange_rate=rate,
        is_active=bool(data.get("is_active", True)),
    )


def parse_currency(data: dict[str, Any]) -> CurrencyDefaults:
    defaults = CurrencyDefaults()
    frequency = data.get("update_frequency", defaults.update_frequency)
    if frequency not in _FREQUENCIES:
        raise ValueError(
            f"'currency.update_frequency' must be one of {_FREQUENCIES}, "
            f"got {frequency!r}"
        )
    display = data.get("default_display_currency", defaults.default_display_currency)
    provider = data.get("api_provider", defaults.api_provider)
    currencies = data.get("supported_currencies") or []
    if not isinstance(currencies, list):
        raise ValueError("'currency.supported_currencies' must be a list")
    return CurrencyDefaults(
        base_currency=_currency_code(
            data.get("base_currency", defaults.base_currency), "currency.base_currency"
        ),
        default_display_currency=(
            _currency_code(display, "currency.default_display_currency")
            if display
            else None
        ),
        auto_update_rates=bool(data.get("auto_update_rates", defaults.auto_update_rates)),
        update_frequency=frequency,
        api_provider=(
            _provider_key(provider, "currency.api_provider") if provider else None
        ),
        supported_currencies=tuple(parse_supported_currency(c) for c in currencies),
    )


def parse_rates(data: dict[str, Any]) -> RateProviderConfig:
    defaults = RateProviderConfig()
    providers = data.get("providers", list(defaults.providers))
    if not isinstance(providers, list) or not providers:
        raise ValueError("'rates.providers' must be a non-empty list")
    if len(set(providers)) != len(providers):
        raise ValueError(f"'rates.providers' lists a provider twice: {providers}")
    return RateProviderConfig(
        providers=tuple(_provider_key(p, "rates.providers") for p in providers),
        timeout_seconds=_positive(
            data.get("timeout_seconds", defaults.timeout_seconds),
            "rates.timeout_seconds",
        ),
        user_agent=str(data.get("user_agent", defaults.user_agent)),
    )


def parse_scheduler(data: dict[str, Any]) -> SchedulerConfig:
    defaults = SchedulerConfig()
    initial_delay = float(
        data.get("initial_delay_seconds", defaults.initial_delay_seconds)
    )
    if initial_delay < 0:
        raise ValueError("'scheduler.initial_delay_seconds' must not be negative")
    max_workers = int(data.get("max_workers", defaults.max_workers))
    if max_workers < 1:
        raise ValueError("'scheduler.max_workers' must be at least 1")
    return SchedulerConfig(
        enabled=bool(data.get("enabled", defaults.enabled)),
        check_interval_seconds=_positive(
            data.get("check_interval_seconds", defaults.check_interval_seconds),
            "scheduler.check_interval_seconds",
        ),
        initial_delay_seconds=initial_delay,
        batch_deadline_seconds=_positive(
            data.get("batch_deadline_seconds", defaults.batch_deadline_seconds),
            "scheduler.batch_deadline_seconds",
        ),
        max_workers=max_workers,
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"'logging.level' must be one of {_LOG_LEVELS}, got {level!r}")
    return LoggingConfig(level=level, json_output=bool(data.get("json_output", True)))


def parse_config(data: dict[str, Any], source: str | None = None) -> LedgerConfig:
    """Parse a whole configuration document."""
    return LedgerConfig(
        database=parse_database(_section(data, "database")),
        currency=parse_currency(_section(data, "currency")),
        rates=parse_rates(_section(data, "rates")),
        scheduler=parse_scheduler(_section(data, "scheduler")),
        logging=parse_logging(_section(data, "logging")),
        source=source,
    )


def load_config(path: Path) -> LedgerConfig:
    return parse_config(load_yaml_file(path), source=str(path))
