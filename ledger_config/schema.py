"""
Configuration schema.

Frozen dataclasses for the process configuration.  YAML documents are
parsed into these types by the loader; every other component receives
them through ``ledger_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the ledger lives and how the engine is tuned."""

    url: str = "sqlite:///sales_ledger.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    sqlite_busy_timeout: float = 30.0


@dataclass(frozen=True)
class SupportedCurrencyDef:
    """A currency seeded into the settings on first bootstrap."""

    code: str
    name: str | None = None
    symbol: str | None = None
    exchange_rate: Decimal = Decimal("1")
    is_active: bool = True


@dataclass(frozen=True)
class CurrencyDefaults:
    """Initial currency settings; only applied when none exist yet."""

    base_currency: str = "USD"
    default_display_currency: str | None = "USD"
    auto_update_rates: bool = True
    update_frequency: str = "daily"
    api_provider: str | None = "EXCHANGERATE_API"
    supported_currencies: tuple[SupportedCurrencyDef, ...] = ()


@dataclass(frozen=True)
class RateProviderConfig:
    """HTTP behaviour and ordering of the rate providers."""

    providers: tuple[str, ...] = ("EXCHANGERATE_API", "FRANKFURTER", "OPEN_EXCHANGE")
    timeout_seconds: float = 5.0
    user_agent: str = "sales-ledger/0.1"


@dataclass(frozen=True)
class SchedulerConfig:
    """Rate refresh scheduler tuning."""

    enabled: bool = True
    check_interval_seconds: float = 3600.0
    initial_delay_seconds: float = 10.0
    batch_deadline_seconds: float = 60.0
    max_workers: int = 4


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    json_output: bool = True


@dataclass(frozen=True)
class LedgerConfig:
    """The whole process configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    currency: CurrencyDefaults = field(default_factory=CurrencyDefaults)
    rates: RateProviderConfig = field(default_factory=RateProviderConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: str | None = None
