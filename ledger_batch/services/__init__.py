"""ledger_batch.services -- The rate updater and the polling scheduler."""

from ledger_batch.services.rate_updater import DEADLINE_EXCEEDED, RateUpdateService
from ledger_batch.services.scheduler import RateUpdateScheduler

__all__ = [
    "DEADLINE_EXCEEDED",
    "RateUpdateScheduler",
    "RateUpdateService",
]
