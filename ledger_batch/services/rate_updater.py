"""
RateUpdateService -- refreshes every supported currency's rate in one batch.

Contract:
    ``update_all()`` reads the currency settings, resolves each active
    supported currency except the base concurrently (one worker per
    currency, bounded by ``max_workers``), then writes every success in a
    single settings write and commit.

Invariants enforced:
    - Provider order is preserved inside each currency's resolution; only
      different currencies run in parallel.
    - The whole batch is bounded by ``batch_deadline_seconds``.  Currencies
      still pending at the deadline fail with reason ``deadline_exceeded``.
    - A failed currency keeps its previous rate and timestamp.
    - ``last_auto_update`` only advances when at least one currency was
      refreshed, and only after every currency has finished or failed.

Failure modes:
    Provider and per-currency failures are absorbed into the summary.
    Database failures while reading or writing settings propagate as
    PersistenceError; the scheduler turns them into a failed summary.
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import CompositeResolutionFailure, PersistenceError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.currency_settings_service import (
    CurrencySettingsService,
    CurrencySettingsSnapshot,
    RateUpdate,
)
from ledger_rates.models import ExchangeRate
from ledger_rates.providers.registry import is_currency_supported
from ledger_rates.resolver import ExchangeRateResolver

from ledger_batch.domain.types import CurrencyOutcome, RateUpdateSummary, UpdateStatus

logger = get_logger("batch.rate_updater")

DEADLINE_EXCEEDED = "deadline_exceeded"


def _failure_reason(exc: BaseException) -> str:
    if isinstance(exc, CompositeResolutionFailure):
        reasons = "; ".join(
            f"{f.provider_name}: {f.reason}" for f in exc.failures
        )
        return reasons or str(exc)
    return getattr(exc, "reason", None) or str(exc) or type(exc).__name__


class RateUpdateService:
    """
    One refresh batch over all supported currencies.

    Non-goals:
        - Does NOT decide whether a refresh is due (see the scheduler).
        - Does NOT retry failed currencies; the next batch will.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        resolver: ExchangeRateResolver,
        clock: Clock | None = None,
        max_workers: int = 4,
        batch_deadline_seconds: float = 60.0,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if batch_deadline_seconds <= 0:
            raise ValueError("batch_deadline_seconds must be positive")
        self._session_factory = session_factory
        self._resolver = resolver
        self._clock = clock or SystemClock()
        self._max_workers = max_workers
        self._deadline = batch_deadline_seconds

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def read_settings(self) -> CurrencySettingsSnapshot | None:
        try:
            with session_scope(self._session_factory) as session:
                return CurrencySettingsService(session).snapshot()
        except SQLAlchemyError as exc:
            raise PersistenceError("read_currency_settings", str(exc)) from exc

    def update_all(
        self, settings: CurrencySettingsSnapshot | None = None
    ) -> RateUpdateSummary:
        """
        Refresh every active supported currency except the base.

        Args:
            settings: Snapshot to work from; read fresh when omitted.
        """
        t0 = time.monotonic()
        started_at = self._clock.now()
        if settings is None:
            settings = self.read_settings()
        if settings is None:
            logger.warning("rate_update_not_configured")
            return RateUpdateSummary(
                status=UpdateStatus.NOT_CONFIGURED,
                started_at=started_at,
                finished_at=self._clock.now(),
                message="currency settings have not been created",
            )

        codes = settings.refreshable_codes()
        if not codes:
            logger.info("rate_update_nothing_to_refresh")
            return RateUpdateSummary(
                status=UpdateStatus.SKIPPED,
                started_at=started_at,
                finished_at=self._clock.now(),
                message="no active currencies besides the base currency",
            )

        logger.info(
            "rate_update_started",
            extra={
                "base_currency": settings.base_currency,
                "currencies": list(codes),
                "provider": settings.api_provider,
            },
        )
        unquoted = [code for code in codes if not is_currency_supported(code)]
        if unquoted:
            # Still attempted; a provider may quote it anyway
            logger.warning(
                "rate_update_currency_rarely_quoted",
                extra={"currencies": unquoted},
            )

        outcomes = self._resolve_all(settings, codes)
        successes = [o for o in outcomes if o.succeeded]

        if successes:
            self._write(successes)

        updated = len(successes)
        failed = len(outcomes) - updated
        if failed == 0:
            status = UpdateStatus.UPDATED
        elif updated == 0:
            status = UpdateStatus.FAILED
        else:
            status = UpdateStatus.PARTIAL

        summary = RateUpdateSummary(
            status=status,
            started_at=started_at,
            finished_at=self._clock.now(),
            updated_count=updated,
            failed_count=failed,
            outcomes=tuple(outcomes),
        )
        log = logger.info if failed == 0 else logger.warning
        log(
            "rate_update_completed",
            extra={
                "status": status.value,
                "updated_count": updated,
                "failed_count": failed,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return summary

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _resolve_all(
        self, settings: CurrencySettingsSnapshot, codes: tuple[str, ...]
    ) -> list[CurrencyOutcome]:
        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(codes)),
            thread_name_prefix="rate-update",
        )
        try:
            futures: dict[str, Future[ExchangeRate]] = {
                code: executor.submit(
                    self._resolver.resolve,
                    settings.base_currency,
                    code,
                    settings.api_provider,
                )
                for code in codes
            }
            wait(futures.values(), timeout=self._deadline)
        finally:
            # Do not block on stragglers; each request has its own timeout
            executor.shutdown(wait=False, cancel_futures=True)

        return [self._outcome(code, futures[code]) for code in codes]

    def _outcome(self, code: str, future: Future) -> CurrencyOutcome:
        if not future.done():
            future.cancel()
            logger.warning(
                "rate_update_currency_failed",
                extra={"target_currency": code, "reason": DEADLINE_EXCEEDED},
            )
            return CurrencyOutcome(code, succeeded=False, reason=DEADLINE_EXCEEDED)

        exc = future.exception()
        if exc is not None:
            reason = _failure_reason(exc)
            if isinstance(exc, CompositeResolutionFailure):
                logger.warning(
                    "rate_update_currency_failed",
                    extra={"target_currency": code, "reason": reason},
                )
            else:
                logger.error(
                    "rate_update_currency_error",
                    extra={"target_currency": code, "reason": reason},
                    exc_info=exc,
                )
            return CurrencyOutcome(code, succeeded=False, reason=reason)

        rate = future.result()
        return CurrencyOutcome(
            code,
            succeeded=True,
            rate=rate.rate,
            provider_name=rate.provider_name,
            observed_at=rate.observed_at,
        )

    def _write(self, successes: list[CurrencyOutcome]) -> int:
        updates = [
            RateUpdate(
                code=o.currency,
                rate=o.rate,
                observed_at=o.observed_at,
                provider_name=o.provider_name,
            )
            for o in successes
        ]
        try:
            with session_scope(self._session_factory) as session:
                return CurrencySettingsService(session).apply_rate_updates(
                    updates, now=self._clock.now()
                )
        except SQLAlchemyError as exc:
            raise PersistenceError("apply_rate_updates", str(exc)) from exc
