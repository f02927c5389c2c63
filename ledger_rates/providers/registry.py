"""
Provider registry -- the ordered set of rate sources known to the system.

Registration order is the fallback order used by the resolver when no
preferred provider is configured.
"""

from typing import Iterable

import requests

from ledger_kernel.domain.clock import Clock
from ledger_rates.providers.base import (
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    RateProvider,
)
from ledger_rates.providers.exchangerate_api import ExchangeRateApiProvider
from ledger_rates.providers.frankfurter import FrankfurterProvider
from ledger_rates.providers.open_er_api import OpenErApiProvider

PROVIDER_REGISTRY: dict[str, type[RateProvider]] = {
    ExchangeRateApiProvider.key: ExchangeRateApiProvider,
    FrankfurterProvider.key: FrankfurterProvider,
    OpenErApiProvider.key: OpenErApiProvider,
}

# Codes the public providers above are known to quote.  ZWL is absent:
# most of them drop it, so refreshes for it usually fail.
SUPPORTED_CURRENCIES: frozenset[str] = frozenset({
    "USD", "EUR", "GBP", "JPY", "AUD", "CAD", "CHF", "CNY", "SEK", "NZD",
    "ZAR", "KES", "NGN", "EGP", "GHS", "TZS", "UGX", "ZMW", "BWP", "MUR",
})


def is_currency_supported(code: str) -> bool:
    return bool(code) and code.upper() in SUPPORTED_CURRENCIES


def get_provider_instance(
    key: str,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    user_agent: str = DEFAULT_USER_AGENT,
    clock: Clock | None = None,
) -> RateProvider:
    """
    Instantiate the provider registered under ``key``.

    Raises:
        KeyError: If no provider is registered under ``key``.
    """
    try:
        provider_cls = PROVIDER_REGISTRY[key]
    except KeyError:
        raise KeyError(
            f"Unknown rate provider {key!r}; known: {sorted(PROVIDER_REGISTRY)}"
        ) from None
    return provider_cls(
        session=session, timeout=timeout, user_agent=user_agent, clock=clock
    )


def build_providers(
    keys: Iterable[str] | None = None,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    user_agent: str = DEFAULT_USER_AGENT,
    clock: Clock | None = None,
) -> list[RateProvider]:
    """
    Build provider instances in ``keys`` order (registry order by default).

    All instances share one HTTP session.
    """
    session = session or requests.Session()
    keys = list(keys) if keys is not None else list(PROVIDER_REGISTRY)
    return [
        get_provider_instance(
            key, session=session, timeout=timeout, user_agent=user_agent, clock=clock
        )
        for key in keys
    ]
