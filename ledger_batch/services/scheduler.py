"""
RateUpdateScheduler -- in-process polling scheduler for the rate refresh.

Contract:
    Looks at the currency settings on a fixed wall-clock interval
    (``check_interval_seconds``, hourly by default, independent of the
    configured update frequency) and once shortly after start
    (``initial_delay_seconds``).  Each look is one ``tick()``:

        idle -> checking -> updating -> idle
                         -> skipped  -> idle

    ``checking`` skips when settings are absent, automatic updates are
    disabled, or the configured frequency is not yet due.  ``force_update()``
    goes straight to ``updating``.

Invariants enforced:
    - Single-flight: at most one refresh batch runs at a time.  A request
      that arrives while a batch is in flight waits for it and receives the
      same summary instead of starting a second batch.
    - Never raises: every failure is logged and returned as a summary with
      status ``failed``.
    - All timestamps come from the injected Clock.
"""

import threading

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import LedgerKernelError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.currency_settings_service import CurrencySettingsSnapshot

from ledger_batch.domain.schedule import is_update_due, next_update_at
from ledger_batch.domain.types import RateUpdateSummary, SchedulerState, UpdateStatus
from ledger_batch.services.rate_updater import RateUpdateService

logger = get_logger("batch.scheduler")


class _Flight:
    """One in-flight refresh batch that late callers can join."""

    def __init__(self):
        self.done = threading.Event()
        self.summary: RateUpdateSummary | None = None


class RateUpdateScheduler:
    """Polling scheduler for the supported currencies' rate refresh.

    Contract:
        - ``tick()`` performs one check and, when due, one refresh.
        - ``force_update()`` refreshes regardless of the due check.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (one instance per process).
        - Does NOT persist its own state; due-ness is derived from
          ``last_auto_update`` on every check.
    """

    def __init__(
        self,
        updater: RateUpdateService,
        clock: Clock | None = None,
        check_interval_seconds: float = 3600.0,
        initial_delay_seconds: float = 10.0,
    ):
        if check_interval_seconds <= 0:
            raise ValueError("check_interval_seconds must be positive")
        if initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must not be negative")
        self._updater = updater
        self._clock = clock or SystemClock()
        self._check_interval = check_interval_seconds
        self._initial_delay = initial_delay_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._flight: _Flight | None = None
        self._state = SchedulerState.IDLE
        self._last_summary: RateUpdateSummary | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def last_summary(self) -> RateUpdateSummary | None:
        return self._last_summary

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _set_state(self, state: SchedulerState) -> None:
        if state is not self._state:
            logger.debug(
                "scheduler_state_changed",
                extra={"from_state": self._state.value, "to_state": state.value},
            )
        self._state = state

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def check_due(
        self, settings: CurrencySettingsSnapshot | None = None
    ) -> tuple[bool, str]:
        """
        Whether an automatic refresh should run now, and why (not).

        Raises:
            PersistenceError: If settings cannot be read.
        """
        if settings is None:
            settings = self._updater.read_settings()
        if settings is None:
            return False, "currency settings have not been created"
        if not settings.auto_update_rates:
            return False, "automatic rate updates are disabled"
        now = self._clock.now()
        last = settings.last_auto_update
        if not is_update_due(last, settings.update_frequency, now):
            due_at = next_update_at(last, settings.update_frequency)
            return False, f"not due until {due_at.isoformat()}"
        return True, "due"

    def tick(self) -> RateUpdateSummary:
        """Check once and refresh when due (public for testing)."""
        started_at = self._clock.now()
        try:
            self._set_state(SchedulerState.CHECKING)
            settings = self._updater.read_settings()
            due, reason = self.check_due(settings)
        except Exception as exc:
            logger.exception("scheduler_check_failed")
            self._set_state(SchedulerState.IDLE)
            return self._remember(self._failed(started_at, exc))

        if not due:
            self._set_state(SchedulerState.SKIPPED)
            status = (
                UpdateStatus.NOT_CONFIGURED if settings is None else UpdateStatus.SKIPPED
            )
            logger.info("scheduler_check_skipped", extra={"reason": reason})
            summary = RateUpdateSummary(
                status=status,
                started_at=started_at,
                finished_at=self._clock.now(),
                message=reason,
            )
            self._set_state(SchedulerState.IDLE)
            return self._remember(summary)

        return self._run_update(settings)

    def force_update(self) -> RateUpdateSummary:
        """Refresh now, bypassing the due check."""
        logger.info("scheduler_force_update")
        return self._run_update(None)

    def start(self) -> None:
        """Start checking in a background daemon thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="rate-update-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={
                "check_interval": self._check_interval,
                "initial_delay": self._initial_delay,
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the background thread to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        if self._stop_event.wait(timeout=self._initial_delay):
            return
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._check_interval)

    def _run_update(
        self, settings: CurrencySettingsSnapshot | None
    ) -> RateUpdateSummary:
        with self._lock:
            flight = self._flight
            owner = flight is None
            if owner:
                flight = self._flight = _Flight()

        if not owner:
            logger.info("scheduler_update_joined")
            flight.done.wait()
            return flight.summary

        started_at = self._clock.now()
        summary = None
        self._set_state(SchedulerState.UPDATING)
        try:
            summary = self._updater.update_all(settings)
        except Exception as exc:
            if isinstance(exc, LedgerKernelError):
                logger.error(
                    "scheduler_update_failed",
                    extra={"error_code": exc.code, "reason": str(exc)},
                )
            else:
                logger.exception("scheduler_update_failed")
            summary = self._failed(started_at, exc)
        finally:
            self._set_state(SchedulerState.IDLE)
            flight.summary = summary
            if summary is not None:
                self._remember(summary)
            with self._lock:
                self._flight = None
            flight.done.set()
        return summary

    def _failed(self, started_at, exc: Exception) -> RateUpdateSummary:
        return RateUpdateSummary(
            status=UpdateStatus.FAILED,
            started_at=started_at,
            finished_at=self._clock.now(),
            message=f"{type(exc).__name__}: {exc}",
        )

    def _remember(self, summary: RateUpdateSummary) -> RateUpdateSummary:
        self._last_summary = summary
        return summary
