"""
ledger_batch.domain -- Pure types and schedule evaluation.

ZERO I/O.  All types are frozen dataclasses.
"""

from ledger_batch.domain.schedule import (
    UpdateFrequency,
    interval_for,
    is_update_due,
    next_update_at,
)
from ledger_batch.domain.types import (
    CurrencyOutcome,
    RateUpdateSummary,
    SchedulerState,
    UpdateStatus,
)

__all__ = [
    "CurrencyOutcome",
    "RateUpdateSummary",
    "SchedulerState",
    "UpdateFrequency",
    "UpdateStatus",
    "interval_for",
    "is_update_due",
    "next_update_at",
]
