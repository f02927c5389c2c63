"""
ExchangeRateResolver -- ordered fallback across rate providers.

Contract:
    ``resolve(base, target, preferred_provider)`` tries the preferred
    provider first (when it is registered) and then every other provider
    in registration order.  Each provider is asked exactly once per call,
    sequentially; the first success wins.  When every provider fails the
    resolver raises ``CompositeResolutionFailure`` carrying each attempt's
    error in order.  An adapter raising anything other than a
    RateProviderError is recorded as that provider's failure too.

    A pair with ``base == target`` resolves to 1 without any network call.
"""

from decimal import Decimal
from typing import Iterable, Sequence

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    CompositeResolutionFailure,
    LedgerKernelError,
    RateProviderError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_rates.models import ExchangeRate, ProviderFailure, RateOutcome
from ledger_rates.providers.base import RateProvider

logger = get_logger("rates.resolver")

INTERNAL_PROVIDER = "Internal"


class ExchangeRateResolver:
    """Walks the configured providers until one quotes the pair."""

    def __init__(self, providers: Sequence[RateProvider], clock: Clock | None = None):
        self._providers = list(providers)
        self._clock = clock or SystemClock()

    @property
    def provider_keys(self) -> tuple[str, ...]:
        return tuple(p.key for p in self._providers)

    def candidates(self, preferred_provider: str | None = None) -> list[RateProvider]:
        """Providers in the order they will be tried."""
        preferred = [p for p in self._providers if p.key == preferred_provider]
        if preferred_provider and not preferred:
            logger.warning(
                "rate_preferred_provider_unknown",
                extra={"provider": preferred_provider},
            )
        return preferred + [p for p in self._providers if p.key != preferred_provider]

    def resolve(
        self, base: str, target: str, preferred_provider: str | None = None
    ) -> ExchangeRate:
        """
        Resolve one pair.

        Raises:
            CompositeResolutionFailure: Every provider failed.
        """
        base = base.upper()
        target = target.upper()
        if base == target:
            return ExchangeRate(
                base_currency=base,
                target_currency=target,
                rate=Decimal("1"),
                provider_name=INTERNAL_PROVIDER,
                provider_key=INTERNAL_PROVIDER,
                observed_at=self._clock.now(),
            )

        failures: list[ProviderFailure] = []
        with LogContext.bind(currency=target):
            for provider in self.candidates(preferred_provider):
                logger.debug(
                    "rate_provider_attempt",
                    extra={"provider": provider.key, "base_currency": base},
                )
                try:
                    rate = provider.get_rate(base, target)
                except Exception as exc:
                    error = exc
                    if not isinstance(exc, RateProviderError):
                        logger.exception(
                            "rate_provider_unexpected_error",
                            extra={"provider": provider.key},
                        )
                        error = RateProviderError(
                            provider.key, base, target, f"{type(exc).__name__}: {exc}"
                        )
                        error.__cause__ = exc
                    failures.append(ProviderFailure(provider.key, provider.name, error))
                    logger.warning(
                        "rate_provider_failed",
                        extra={
                            "provider": provider.key,
                            "error_code": error.code,
                            "reason": error.reason,
                        },
                    )
                    continue

                logger.info(
                    "rate_resolved",
                    extra={
                        "provider": provider.key,
                        "base_currency": base,
                        "rate": rate.rate,
                        "attempts": len(failures) + 1,
                    },
                )
                return rate

        raise CompositeResolutionFailure(base, target, tuple(failures))

    def resolve_many(
        self,
        base: str,
        targets: Iterable[str],
        preferred_provider: str | None = None,
    ) -> dict[str, RateOutcome]:
        """Resolve each target independently; failures are reported, not raised."""
        outcomes: dict[str, RateOutcome] = {}
        for target in targets:
            code = target.upper()
            try:
                outcomes[code] = RateOutcome(
                    code, rate=self.resolve(base, code, preferred_provider)
                )
            except LedgerKernelError as exc:
                outcomes[code] = RateOutcome(code, error=exc)
        return outcomes
