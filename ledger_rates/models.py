"""Value types produced by rate providers and the resolver."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class ParsedRate:
    """What an adapter extracts from one provider response."""

    rate: Decimal
    observed_at: datetime | None = None


@dataclass(frozen=True)
class ExchangeRate:
    """
    Units of ``target_currency`` per one unit of ``base_currency``.

    Ephemeral: produced per resolution and folded into the currency
    settings by the rate updater, never persisted on its own.
    """

    base_currency: str
    target_currency: str
    rate: Decimal
    provider_name: str
    provider_key: str
    observed_at: datetime


@dataclass(frozen=True)
class ProviderFailure:
    """One provider's failed attempt inside a resolution."""

    provider_key: str
    provider_name: str
    error: Exception

    @property
    def reason(self) -> str:
        return getattr(self.error, "reason", None) or str(self.error)


@dataclass(frozen=True)
class RateOutcome:
    """Per-currency result of a multi-currency resolution."""

    currency: str
    rate: ExchangeRate | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.rate is not None
