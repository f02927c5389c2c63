"""Rate provider adapters and their registry."""

from ledger_rates.providers.base import RateProvider
from ledger_rates.providers.exchangerate_api import ExchangeRateApiProvider
from ledger_rates.providers.frankfurter import FrankfurterProvider
from ledger_rates.providers.open_er_api import OpenErApiProvider
from ledger_rates.providers.registry import (
    PROVIDER_REGISTRY,
    SUPPORTED_CURRENCIES,
    build_providers,
    get_provider_instance,
    is_currency_supported,
)

__all__ = [
    "ExchangeRateApiProvider",
    "FrankfurterProvider",
    "OpenErApiProvider",
    "PROVIDER_REGISTRY",
    "RateProvider",
    "SUPPORTED_CURRENCIES",
    "build_providers",
    "get_provider_instance",
    "is_currency_supported",
]
