"""ExchangeRate-API adapter (``/v4/latest/<BASE>``)."""

from typing import Any

from ledger_rates.models import ParsedRate
from ledger_rates.providers.base import RateProvider


class ExchangeRateApiProvider(RateProvider):
    key = "EXCHANGERATE_API"
    name = "ExchangeRate-API"
    base_url = "https://api.exchangerate-api.com/v4/latest"

    def build_url(self, base: str, target: str) -> str:
        return f"{self.base_url}/{base}"

    def parse_response(
        self, data: dict[str, Any], base: str, target: str
    ) -> ParsedRate | None:
        rate = self._rate_from_map(data, base, target)
        if rate is None:
            return None
        return ParsedRate(
            rate=rate, observed_at=self._from_unix(data.get("time_last_updated"))
        )
