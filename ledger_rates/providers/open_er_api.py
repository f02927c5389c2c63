"""Open Exchange Rates adapter (open.er-api.com ``/v6/latest/<BASE>``)."""

from typing import Any

from ledger_rates.models import ParsedRate
from ledger_rates.providers.base import RateProvider


class OpenErApiProvider(RateProvider):
    key = "OPEN_EXCHANGE"
    name = "Open Exchange Rates"
    base_url = "https://open.er-api.com/v6/latest"

    def build_url(self, base: str, target: str) -> str:
        return f"{self.base_url}/{base}"

    def parse_response(
        self, data: dict[str, Any], base: str, target: str
    ) -> ParsedRate | None:
        # {"result": "error", "error-type": "unsupported-code"} for unknown bases
        if data.get("result") == "error":
            return None
        rate = self._rate_from_map(data, base, target)
        if rate is None:
            return None
        return ParsedRate(
            rate=rate, observed_at=self._from_unix(data.get("time_last_update_unix"))
        )
