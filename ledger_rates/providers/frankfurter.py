"""Frankfurter adapter (``/latest?from=<BASE>&to=<TARGET>``)."""

from datetime import datetime, timezone
from typing import Any

from ledger_rates.models import ParsedRate
from ledger_rates.providers.base import RateProvider


class FrankfurterProvider(RateProvider):
    key = "FRANKFURTER"
    name = "Frankfurter"
    base_url = "https://api.frankfurter.app/latest"

    def build_url(self, base: str, target: str) -> str:
        return f"{self.base_url}?from={base}&to={target}"

    def parse_response(
        self, data: dict[str, Any], base: str, target: str
    ) -> ParsedRate | None:
        rate = self._rate_from_map(data, base, target)
        if rate is None:
            return None
        observed_at = None
        # Frankfurter publishes a business date, not a timestamp
        if isinstance(data.get("date"), str):
            try:
                observed_at = datetime.strptime(data["date"], "%Y-%m-%d").replace(
                    tzinfo=timezone.utc
                )
            except ValueError:
                observed_at = None
        return ParsedRate(rate=rate, observed_at=observed_at)
