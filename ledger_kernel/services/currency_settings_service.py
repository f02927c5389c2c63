"""
CurrencySettingsService -- the currency settings singleton store.

Responsibility:
    Creates the settings row once at bootstrap, answers "what rate do we
    hold for this currency", applies a batch of refreshed rates in a single
    write, and carries the user-facing configuration toggles.

Invariants enforced:
    - One settings row (unique singleton key; creation race re-reads).
    - A batch of rate refreshes is written in one flush under a row lock on
      the settings singleton, and ``last_auto_update`` only advances when at
      least one rate was applied.
    - The base currency's rate is never overwritten.
    - Every stored rate is strictly positive.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.types import to_decimal
from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_kernel.exceptions import (
    CurrencySettingsNotFoundError,
    InvalidExchangeRateError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.currency_settings import (
    SINGLETON_KEY,
    CurrencySettings,
    SupportedCurrency,
    UpdateFrequencyValue,
)
from ledger_kernel.services.base import BaseService

logger = get_logger("services.currency_settings")


# ---------------------------------------------------------------------------
# Seeds (bootstrap input) and snapshots (session-free output)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SupportedCurrencySeed:
    code: str
    name: str | None = None
    symbol: str | None = None
    exchange_rate: Decimal = Decimal("1")
    is_active: bool = True


@dataclass(frozen=True)
class SettingsSeed:
    """Values the singleton is created with on first bootstrap."""

    base_currency: str = "USD"
    default_display_currency: str | None = "USD"
    auto_update_rates: bool = True
    update_frequency: str = UpdateFrequencyValue.DAILY.value
    api_provider: str | None = "EXCHANGERATE_API"
    currencies: tuple[SupportedCurrencySeed, ...] = (
        SupportedCurrencySeed("USD", "US Dollar", "$", Decimal("1")),
        SupportedCurrencySeed("ZWL", "Zimbabwean Dollar (ZIG)", "Z$", Decimal("30")),
    )


@dataclass(frozen=True)
class SupportedCurrencySnapshot:
    code: str
    name: str | None
    symbol: str | None
    exchange_rate: Decimal
    is_active: bool
    last_updated: datetime | None


@dataclass(frozen=True)
class CurrencySettingsSnapshot:
    base_currency: str
    default_display_currency: str | None
    auto_update_rates: bool
    update_frequency: str
    last_auto_update: datetime | None
    api_provider: str | None
    currencies: tuple[SupportedCurrencySnapshot, ...] = field(default_factory=tuple)

    def refreshable_codes(self) -> tuple[str, ...]:
        """Active currencies other than the base, in configured order."""
        return tuple(
            c.code
            for c in self.currencies
            if c.is_active and c.code != self.base_currency
        )

    def rate_for(self, code: str) -> Decimal | None:
        if code == self.base_currency:
            return Decimal("1")
        for c in self.currencies:
            if c.code == code and c.is_active:
                return c.exchange_rate
        return None


@dataclass(frozen=True)
class RateUpdate:
    """A refreshed rate for one currency, as observed by its provider."""

    code: str
    rate: Decimal
    observed_at: datetime
    provider_name: str | None = None


def _validate_rate(code: str, rate) -> Decimal:
    try:
        value = to_decimal(rate)
    except ValueError as exc:
        raise InvalidExchangeRateError(code, rate) from exc
    if value <= 0:
        raise InvalidExchangeRateError(code, rate)
    return value


def _validate_frequency(frequency: str) -> str:
    try:
        return UpdateFrequencyValue(frequency).value
    except ValueError as exc:
        raise ValueError(
            f"update_frequency must be one of "
            f"{[f.value for f in UpdateFrequencyValue]}, got {frequency!r}"
        ) from exc


class CurrencySettingsService(BaseService):
    """Read/write surface of the currency settings singleton."""

    # ------------------------------------------------------------------
    # Singleton access
    # ------------------------------------------------------------------

    def get_singleton(self) -> CurrencySettings | None:
        return self.session.execute(
            select(CurrencySettings).where(
                CurrencySettings.singleton_key == SINGLETON_KEY
            )
        ).scalar_one_or_none()

    def require_singleton(self) -> CurrencySettings:
        settings = self.get_singleton()
        if settings is None:
            raise CurrencySettingsNotFoundError()
        return settings

    def lock_singleton(self) -> CurrencySettings:
        """
        Re-read the singleton with a row lock for a read-modify-write.

        Raises:
            CurrencySettingsNotFoundError: If bootstrap has not run.
        """
        settings = self.session.execute(
            select(CurrencySettings)
            .where(CurrencySettings.singleton_key == SINGLETON_KEY)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if settings is None:
            raise CurrencySettingsNotFoundError()
        return settings

    def get_or_create_singleton(self, seed: SettingsSeed | None = None) -> CurrencySettings:
        """Return the singleton, creating it from ``seed`` on first call."""
        settings = self.get_singleton()
        if settings is not None:
            return settings

        seed = seed or SettingsSeed()
        base = CurrencyRegistry.validate(seed.base_currency)
        settings = CurrencySettings(
            singleton_key=SINGLETON_KEY,
            base_currency=base,
            default_display_currency=seed.default_display_currency,
            auto_update_rates=seed.auto_update_rates,
            update_frequency=_validate_frequency(seed.update_frequency),
            api_provider=seed.api_provider,
        )
        for position, currency in enumerate(seed.currencies):
            settings.supported_currencies.append(
                SupportedCurrency(
                    code=CurrencyRegistry.validate(currency.code),
                    name=currency.name,
                    symbol=currency.symbol,
                    exchange_rate=_validate_rate(currency.code, currency.exchange_rate),
                    is_active=currency.is_active,
                    position=position,
                )
            )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(settings)
            self.session.flush()
            savepoint.commit()
            logger.info(
                "currency_settings_created",
                extra={
                    "base_currency": base,
                    "currencies": [c.code for c in seed.currencies],
                },
            )
            return settings
        except IntegrityError:
            savepoint.rollback()
            logger.debug("currency_settings_create_race_retry")
            return self.require_singleton()

    def snapshot(self) -> CurrencySettingsSnapshot | None:
        settings = self.get_singleton()
        if settings is None:
            return None
        return CurrencySettingsSnapshot(
            base_currency=settings.base_currency,
            default_display_currency=settings.default_display_currency,
            auto_update_rates=settings.auto_update_rates,
            update_frequency=settings.update_frequency,
            last_auto_update=settings.last_auto_update,
            api_provider=settings.api_provider,
            currencies=tuple(
                SupportedCurrencySnapshot(
                    code=c.code,
                    name=c.name,
                    symbol=c.symbol,
                    exchange_rate=c.exchange_rate,
                    is_active=c.is_active,
                    last_updated=c.last_updated,
                )
                for c in settings.supported_currencies
            ),
        )

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    def get_exchange_rate(self, code: str) -> Decimal | None:
        """
        Rate held for ``code``: 1 for the base currency, the stored rate for
        an active supported currency, otherwise None.
        """
        settings = self.get_singleton()
        if settings is None:
            return None
        code = code.upper()
        if code == settings.base_currency:
            return Decimal("1")
        currency = settings.find_currency(code)
        if currency is None or not currency.is_active:
            return None
        return currency.exchange_rate

    def apply_rate_updates(
        self,
        updates: Mapping[str, RateUpdate] | list[RateUpdate],
        now: datetime,
    ) -> int:
        """
        Write a batch of refreshed rates in one locked write.

        Currencies not present in ``updates`` keep their previous rate and
        timestamp.  Updates for the base currency or for codes that are not
        supported are ignored.

        Returns:
            The number of currencies whose rate was applied.

        Raises:
            CurrencySettingsNotFoundError: If bootstrap has not run.
            InvalidExchangeRateError: If any rate is not strictly positive.
        """
        items = list(updates.values()) if isinstance(updates, Mapping) else list(updates)
        validated = [(u, _validate_rate(u.code, u.rate)) for u in items]

        settings = self.lock_singleton()
        applied = 0
        for update, rate in validated:
            if update.code == settings.base_currency:
                continue
            currency = settings.find_currency(update.code)
            if currency is None:
                logger.warning(
                    "rate_update_unknown_currency",
                    extra={"target_currency": update.code},
                )
                continue
            currency.exchange_rate = rate
            currency.last_updated = update.observed_at
            applied += 1

        if applied:
            settings.last_auto_update = now
        self.session.flush()

        logger.info(
            "rates_applied",
            extra={"applied": applied, "submitted": len(items)},
        )
        return applied

    # ------------------------------------------------------------------
    # User configuration
    # ------------------------------------------------------------------

    def configure_auto_update(
        self, enabled: bool | None = None, frequency: str | None = None
    ) -> CurrencySettings:
        settings = self.lock_singleton()
        if enabled is not None:
            settings.auto_update_rates = enabled
        if frequency is not None:
            settings.update_frequency = _validate_frequency(frequency)
        self.session.flush()
        logger.info(
            "auto_update_configured",
            extra={
                "auto_update_rates": settings.auto_update_rates,
                "update_frequency": settings.update_frequency,
            },
        )
        return settings

    def set_preferred_provider(self, provider_key: str | None) -> CurrencySettings:
        settings = self.lock_singleton()
        settings.api_provider = provider_key
        self.session.flush()
        return settings

    def upsert_supported_currency(
        self,
        code: str,
        *,
        name: str | None = None,
        symbol: str | None = None,
        exchange_rate=None,
        is_active: bool | None = None,
    ) -> SupportedCurrency:
        """Add a supported currency or change an existing one's fields."""
        code = CurrencyRegistry.validate(code)
        settings = self.lock_singleton()
        currency = settings.find_currency(code)
        if currency is None:
            currency = SupportedCurrency(
                code=code,
                name=name,
                symbol=symbol,
                exchange_rate=_validate_rate(
                    code, exchange_rate if exchange_rate is not None else 1
                ),
                is_active=True if is_active is None else is_active,
                position=len(settings.supported_currencies),
            )
            settings.supported_currencies.append(currency)
        else:
            if name is not None:
                currency.name = name
            if symbol is not None:
                currency.symbol = symbol
            if exchange_rate is not None:
                currency.exchange_rate = _validate_rate(code, exchange_rate)
            if is_active is not None:
                currency.is_active = is_active
        self.session.flush()
        return currency
