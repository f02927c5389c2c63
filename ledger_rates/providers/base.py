"""
RateProvider -- base class for one external exchange rate source.

Contract:
    ``get_rate(base, target)`` performs exactly one HTTPS GET (bounded by a
    timeout, with ``Accept: application/json`` and a fixed User-Agent) and
    either returns an ``ExchangeRate`` or raises one of:

    - TransportError: timeout, connection failure or non-2xx status.
    - MalformedResponseError: body is not a JSON object in the provider's
      format, or the quoted rate is not a positive number.
    - RateNotFoundError: structurally valid body without the target.

    Subclasses only describe the URL and where the rate sits in the body.
    Adapters hold no state besides the HTTP session and never retry.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar

import requests

from ledger_kernel.db.types import to_decimal
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    MalformedResponseError,
    RateNotFoundError,
    TransportError,
)
from ledger_kernel.logging_config import get_logger
from ledger_rates.models import ExchangeRate, ParsedRate

logger = get_logger("rates.providers")

DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_USER_AGENT = "sales-ledger/0.1"


class RateProvider(ABC):
    """One pluggable rate source."""

    key: ClassVar[str]
    name: ClassVar[str]

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        clock: Clock | None = None,
    ):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._user_agent = user_agent
        self._clock = clock or SystemClock()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.key}>"

    @property
    def headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "User-Agent": self._user_agent}

    @abstractmethod
    def build_url(self, base: str, target: str) -> str:
        """Full request URL for the pair, query string included."""

    @abstractmethod
    def parse_response(
        self, data: dict[str, Any], base: str, target: str
    ) -> ParsedRate | None:
        """
        Extract the rate for ``target``.

        Returns None when the body is well formed but does not quote the
        target.  Raises MalformedResponseError when the body is not in the
        provider's format.
        """

    def fetch_raw(self, base: str, target: str) -> dict[str, Any]:
        url = self.build_url(base, target)
        logger.debug("rate_provider_request", extra={"provider": self.key, "url": url})
        try:
            response = self._session.get(
                url, headers=self.headers, timeout=self._timeout
            )
        except requests.Timeout as exc:
            raise TransportError(
                self.key, base, target, f"timed out after {self._timeout}s"
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(self.key, base, target, str(exc)) from exc

        if not 200 <= response.status_code < 300:
            raise TransportError(
                self.key,
                base,
                target,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                self.key, base, target, "body is not JSON"
            ) from exc
        if not isinstance(data, dict):
            raise MalformedResponseError(
                self.key, base, target, "body is not a JSON object"
            )
        return data

    def get_rate(self, base: str, target: str) -> ExchangeRate:
        data = self.fetch_raw(base, target)
        parsed = self.parse_response(data, base, target)
        if parsed is None:
            raise RateNotFoundError(self.key, base, target)
        return ExchangeRate(
            base_currency=base,
            target_currency=target,
            rate=parsed.rate,
            provider_name=self.name,
            provider_key=self.key,
            observed_at=parsed.observed_at or self._clock.now(),
        )

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _rate_from_map(
        self, data: dict[str, Any], base: str, target: str
    ) -> Decimal | None:
        rates = data.get("rates")
        if not isinstance(rates, dict):
            raise MalformedResponseError(
                self.key, base, target, "'rates' object missing"
            )
        if target not in rates:
            return None
        raw = rates[target]
        if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
            raise MalformedResponseError(
                self.key, base, target, f"rate is not a number: {raw!r}"
            )
        try:
            rate = to_decimal(raw)
        except ValueError as exc:
            raise MalformedResponseError(
                self.key, base, target, f"rate is not a number: {raw!r}"
            ) from exc
        if rate <= 0:
            raise MalformedResponseError(
                self.key, base, target, f"rate is not positive: {raw!r}"
            )
        return rate

    @staticmethod
    def _from_unix(value: Any) -> datetime | None:
        """Unix seconds to UTC; None for anything unusable (the clock fills in)."""
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
