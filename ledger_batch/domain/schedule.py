"""
Pure due-check for the automatic rate refresh.

Contract:
    ``is_update_due(last_update, frequency, now)`` and
    ``next_update_at()`` are PURE: no I/O, no clock reads.  The caller
    supplies ``now``.

    A refresh is due when ``now - last_update >= interval_for(frequency)``.
    A settings row that has never been refreshed (``last_update is None``)
    is always due.  Unknown frequency strings fall back to daily.
"""

from datetime import datetime, timedelta
from enum import Enum


class UpdateFrequency(str, Enum):
    """How often the supported currencies' rates should be refreshed."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


_INTERVALS = {
    UpdateFrequency.HOURLY: timedelta(hours=1),
    UpdateFrequency.DAILY: timedelta(days=1),
    UpdateFrequency.WEEKLY: timedelta(weeks=1),
}


def interval_for(frequency: UpdateFrequency | str | None) -> timedelta:
    """Refresh interval for ``frequency``; daily when unrecognised."""
    try:
        return _INTERVALS[UpdateFrequency(frequency)]
    except ValueError:
        return _INTERVALS[UpdateFrequency.DAILY]


def is_update_due(
    last_update: datetime | None,
    frequency: UpdateFrequency | str | None,
    now: datetime,
) -> bool:
    if last_update is None:
        return True
    return now - last_update >= interval_for(frequency)


def next_update_at(
    last_update: datetime | None,
    frequency: UpdateFrequency | str | None,
) -> datetime | None:
    """When the next refresh becomes due, or None if it is due already."""
    if last_update is None:
        return None
    return last_update + interval_for(frequency)
