"""
ledger_services.orchestrator -- DI container and lifecycle owner.

Responsibility:
    Creates the rate providers, resolver, rate updater and scheduler once
    and wires them to one session factory and one Clock.  Owns the
    scheduler's lifecycle: nothing else starts or stops it.

Invariants enforced:
    - Clock injection: every component receives the same Clock.
    - The scheduler is an instance attribute, never module state, so tests
      and embedding processes can run several orchestrators side by side.
    - ``post_sale`` never hides a posting failure.  It logs
      ``sale_posting_failed`` (the sale exists, its accounting does not)
      and re-raises.

Usage:
    config = get_active_config()
    with LedgerOrchestrator.from_config(config) as ledger:
        ledger.bootstrap()
        ledger.start()
        record = ledger.post_sale(fact)
"""

from __future__ import annotations

from typing import Callable

import requests
from sqlalchemy.orm import Session

from ledger_batch.domain.types import RateUpdateSummary
from ledger_batch.services.rate_updater import RateUpdateService
from ledger_batch.services.scheduler import RateUpdateScheduler
from ledger_config.schema import CurrencyDefaults, LedgerConfig
from ledger_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.entries import TransactionRecord
from ledger_kernel.domain.facts import SaleFact
from ledger_kernel.logging_config import configure_logging, get_logger
from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.currency_settings_service import (
    CurrencySettingsService,
    CurrencySettingsSnapshot,
    SettingsSeed,
    SupportedCurrencySeed,
)
from ledger_kernel.services.posting_service import SalesPostingService
from ledger_rates.providers.registry import build_providers
from ledger_rates.resolver import ExchangeRateResolver

logger = get_logger("services.orchestrator")


def settings_seed_from(defaults: CurrencyDefaults) -> SettingsSeed:
    """Translate configured currency defaults into a settings seed."""
    currencies = tuple(
        SupportedCurrencySeed(
            code=c.code,
            name=c.name,
            symbol=c.symbol,
            exchange_rate=c.exchange_rate,
            is_active=c.is_active,
        )
        for c in defaults.supported_currencies
    )
    if not any(c.code == defaults.base_currency for c in currencies):
        currencies = (SupportedCurrencySeed(defaults.base_currency),) + currencies
    return SettingsSeed(
        base_currency=defaults.base_currency,
        default_display_currency=defaults.default_display_currency,
        auto_update_rates=defaults.auto_update_rates,
        update_frequency=defaults.update_frequency,
        api_provider=defaults.api_provider,
        currencies=currencies,
    )


class LedgerOrchestrator:
    """Composition root for one sales ledger process.

    Contract:
        - ``from_config()`` initialises the engine and wires everything.
        - ``bootstrap()`` creates tables, the currency settings singleton
          and the four sales accounts (all idempotent).
        - ``post_sale()`` posts one fact in its own transaction, or inside
          the caller's session when one is passed.
        - ``start()`` / ``stop()`` run the rate refresh scheduler.

    Non-goals:
        - Does NOT roll back the sale when posting fails.
    """

    def __init__(
        self,
        config: LedgerConfig,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        http_session: requests.Session | None = None,
    ) -> None:
        self._config = config
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

        providers = build_providers(
            config.rates.providers,
            session=http_session,
            timeout=config.rates.timeout_seconds,
            user_agent=config.rates.user_agent,
            clock=self._clock,
        )
        self.resolver = ExchangeRateResolver(providers, clock=self._clock)
        self.rate_updater = RateUpdateService(
            session_factory,
            self.resolver,
            clock=self._clock,
            max_workers=config.scheduler.max_workers,
            batch_deadline_seconds=config.scheduler.batch_deadline_seconds,
        )
        self.scheduler = RateUpdateScheduler(
            self.rate_updater,
            clock=self._clock,
            check_interval_seconds=config.scheduler.check_interval_seconds,
            initial_delay_seconds=config.scheduler.initial_delay_seconds,
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        clock: Clock | None = None,
        http_session: requests.Session | None = None,
    ) -> LedgerOrchestrator:
        """Initialise logging and the engine from ``config`` and wire up."""
        configure_logging(
            level=config.logging.level,
            json_output=config.logging.json_output,
        )
        db = config.database
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            sqlite_busy_timeout=db.sqlite_busy_timeout,
        )
        return cls(config, get_session_factory(), clock=clock, http_session=http_session)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def bootstrap(self, create_schema: bool = True) -> CurrencySettingsSnapshot:
        """Create the schema, settings singleton and sales accounts."""
        if create_schema:
            probe = self._session_factory()
            try:
                engine = probe.get_bind()
            finally:
                probe.close()
            create_tables(engine)
        with session_scope(self._session_factory) as session:
            settings = CurrencySettingsService(session)
            settings.get_or_create_singleton(settings_seed_from(self._config.currency))
            AccountDirectory(session).resolve_sales_accounts()
            snapshot = settings.snapshot()
        logger.info(
            "ledger_bootstrapped",
            extra={
                "base_currency": snapshot.base_currency,
                "supported": [c.code for c in snapshot.currencies],
            },
        )
        return snapshot

    def start(self) -> bool:
        """Start the scheduler unless disabled by configuration."""
        if not self._config.scheduler.enabled:
            logger.info("scheduler_disabled")
            return False
        self.scheduler.start()
        return True

    def stop(self, timeout: float = 30.0) -> None:
        self.scheduler.stop(timeout=timeout)

    def __enter__(self) -> LedgerOrchestrator:
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def post_sale(
        self, fact: SaleFact, session: Session | None = None
    ) -> TransactionRecord:
        """
        Post a completed sale or invoice.

        With ``session`` the posting joins the caller's transaction and the
        caller commits; otherwise it runs and commits in its own.

        Raises:
            Whatever the posting engine raised, after logging
            ``sale_posting_failed``.
        """
        try:
            if session is not None:
                return self._posting_service(session).post(fact)
            with session_scope(self._session_factory) as own_session:
                return self._posting_service(own_session).post(fact)
        except Exception as exc:
            logger.error(
                "sale_posting_failed",
                extra={
                    "sale_reference": fact.reference,
                    "sale_reference_id": fact.reference_id,
                    "sale_kind": fact.kind.value,
                    "error_type": type(exc).__name__,
                    "error_code": getattr(exc, "code", None),
                    "detail": (
                        "sale was recorded but its ledger transaction was "
                        f"not posted: {exc}"
                    ),
                },
            )
            raise

    def refresh_rates(self) -> RateUpdateSummary:
        """Refresh every supported currency now (administrative trigger)."""
        return self.scheduler.force_update()

    def settings_snapshot(self) -> CurrencySettingsSnapshot | None:
        with session_scope(self._session_factory) as session:
            return CurrencySettingsService(session).snapshot()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _posting_service(self, session: Session) -> SalesPostingService:
        return SalesPostingService(
            session,
            clock=self._clock,
            default_base_currency=self._config.currency.base_currency,
        )

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock
