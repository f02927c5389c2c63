"""
ledger_batch.domain.types -- Frozen result types for the rate refresh.

Follows the pattern of the kernel DTOs: frozen dataclasses with enum
status fields and tuples for immutable collections.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class SchedulerState(str, Enum):
    """Where the rate update scheduler currently is."""

    IDLE = "idle"
    CHECKING = "checking"
    UPDATING = "updating"
    SKIPPED = "skipped"


class UpdateStatus(str, Enum):
    """Overall result of one check or refresh batch."""

    UPDATED = "updated"  # Every currency refreshed
    PARTIAL = "partial"  # Some refreshed, some kept their previous rate
    FAILED = "failed"  # Nothing refreshed
    SKIPPED = "skipped"  # Not due, disabled, or nothing to refresh
    NOT_CONFIGURED = "not_configured"  # No currency settings yet


@dataclass(frozen=True)
class CurrencyOutcome:
    """Per-currency result inside one refresh batch."""

    currency: str
    succeeded: bool
    rate: Decimal | None = None
    provider_name: str | None = None
    observed_at: datetime | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "currency": self.currency,
            "succeeded": self.succeeded,
            "rate": str(self.rate) if self.rate is not None else None,
            "provider": self.provider_name,
            "observedAt": self.observed_at.isoformat() if self.observed_at else None,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class RateUpdateSummary:
    """What one scheduler check or forced refresh did."""

    status: UpdateStatus
    started_at: datetime
    finished_at: datetime
    updated_count: int = 0
    failed_count: int = 0
    outcomes: tuple[CurrencyOutcome, ...] = field(default_factory=tuple)
    message: str | None = None

    @property
    def ran_update(self) -> bool:
        return self.status in (
            UpdateStatus.UPDATED,
            UpdateStatus.PARTIAL,
            UpdateStatus.FAILED,
        ) and bool(self.outcomes)

    def outcome_for(self, currency: str) -> CurrencyOutcome | None:
        for outcome in self.outcomes:
            if outcome.currency == currency:
                return outcome
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "updatedCount": self.updated_count,
            "failedCount": self.failed_count,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat(),
            "message": self.message,
        }
