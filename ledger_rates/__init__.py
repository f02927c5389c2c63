"""
ledger_rates -- exchange rate acquisition.

Pluggable provider adapters over public HTTPS rate APIs, an ordered
provider registry, and the resolver that walks the providers in preference
order until one answers.
"""

from ledger_rates.models import ExchangeRate, ProviderFailure, RateOutcome
from ledger_rates.resolver import INTERNAL_PROVIDER, ExchangeRateResolver

__all__ = [
    "ExchangeRate",
    "ExchangeRateResolver",
    "INTERNAL_PROVIDER",
    "ProviderFailure",
    "RateOutcome",
]
