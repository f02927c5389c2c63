"""
Tests for ExchangeRateResolver -- ordered provider fallback.

Providers are the real adapters over a mocked HTTP session so the
fallback order is observable through the requested URLs.
"""

from decimal import Decimal

import pytest
import requests

from ledger_kernel.exceptions import (
    CompositeResolutionFailure,
    MalformedResponseError,
    RateNotFoundError,
    TransportError,
)
from ledger_rates.providers import build_providers
from ledger_rates.resolver import INTERNAL_PROVIDER, ExchangeRateResolver

ERAPI = "https://api.exchangerate-api.com/"
FRANKFURTER = "https://api.frankfurter.app/"
OPEN_ER = "https://open.er-api.com/"


@pytest.fixture
def resolver(http_session, clock):
    return ExchangeRateResolver(build_providers(session=http_session, clock=clock), clock)


def requested_hosts(http_session) -> list[str]:
    return [call.args[0].split("/")[2] for call in http_session.get.call_args_list]


# =============================================================================
# Identity pair
# =============================================================================


class TestIdentityPair:
    def test_same_currency_is_one_without_network(self, resolver, http_session, clock):
        rate = resolver.resolve("usd", "USD")

        assert rate.rate == Decimal("1")
        assert rate.provider_name == INTERNAL_PROVIDER
        assert rate.observed_at == clock.now()
        http_session.get.assert_not_called()


# =============================================================================
# Order and fallback
# =============================================================================


class TestFallbackOrder:
    def test_first_provider_wins(self, resolver, http_session, http_routes, json_response):
        http_routes[ERAPI] = json_response({"rates": {"EUR": 0.875}})
        http_routes[FRANKFURTER] = json_response({"rates": {"EUR": 0.75}})

        rate = resolver.resolve("USD", "EUR")

        assert rate.rate == Decimal("0.875")
        assert rate.provider_key == "EXCHANGERATE_API"
        assert requested_hosts(http_session) == ["api.exchangerate-api.com"]

    def test_preferred_provider_tried_first(
        self, resolver, http_session, http_routes, json_response
    ):
        http_routes[ERAPI] = json_response({"rates": {"EUR": 0.875}})
        http_routes[OPEN_ER] = json_response({"result": "success", "rates": {"EUR": 0.75}})

        rate = resolver.resolve("USD", "EUR", preferred_provider="OPEN_EXCHANGE")

        assert rate.provider_key == "OPEN_EXCHANGE"
        assert rate.rate == Decimal("0.75")
        assert requested_hosts(http_session) == ["open.er-api.com"]

    def test_falls_back_in_registration_order(
        self, resolver, http_session, http_routes, json_response
    ):
        http_routes[ERAPI] = requests.Timeout("slow")
        http_routes[FRANKFURTER] = json_response({"message": "bad"}, status_code=404)
        http_routes[OPEN_ER] = json_response({"result": "success", "rates": {"EUR": 1.25}})

        rate = resolver.resolve("USD", "EUR")

        assert rate.provider_name == "Open Exchange Rates"
        assert requested_hosts(http_session) == [
            "api.exchangerate-api.com",
            "api.frankfurter.app",
            "open.er-api.com",
        ]

    def test_preferred_failure_falls_back_to_remaining(
        self, resolver, http_session, http_routes, json_response
    ):
        http_routes[FRANKFURTER] = requests.ConnectionError("down")
        http_routes[ERAPI] = json_response({"rates": {"EUR": 0.875}})

        rate = resolver.resolve("USD", "EUR", preferred_provider="FRANKFURTER")

        assert rate.provider_key == "EXCHANGERATE_API"
        assert requested_hosts(http_session) == [
            "api.frankfurter.app",
            "api.exchangerate-api.com",
        ]

    def test_unknown_preferred_provider_uses_default_order(
        self, resolver, http_routes, json_response, captured_logs
    ):
        http_routes[ERAPI] = json_response({"rates": {"EUR": 0.875}})

        rate = resolver.resolve("USD", "EUR", preferred_provider="CURRENCYLAYER")

        assert rate.provider_key == "EXCHANGERATE_API"
        assert any(
            r["message"] == "rate_preferred_provider_unknown" for r in captured_logs()
        )

    def test_each_provider_asked_once(self, resolver, http_session):
        with pytest.raises(CompositeResolutionFailure):
            resolver.resolve("USD", "EUR", preferred_provider="FRANKFURTER")
        assert http_session.get.call_count == 3


class TestMisbehavingProvider:
    def test_out_of_range_timestamp_uses_clock(
        self, resolver, http_session, http_routes, json_response, clock
    ):
        http_routes[ERAPI] = json_response(
            {"rates": {"EUR": 0.875}, "time_last_updated": 1e20}
        )
        http_routes[FRANKFURTER] = json_response({"rates": {"EUR": 0.75}})

        rate = resolver.resolve("USD", "EUR")

        assert rate.provider_key == "EXCHANGERATE_API"
        assert rate.rate == Decimal("0.875")
        assert rate.observed_at == clock.now()

    def test_unexpected_error_falls_through_to_next_provider(
        self, resolver, http_routes, json_response, captured_logs
    ):
        def broken(url):
            raise RuntimeError("adapter bug")

        http_routes[ERAPI] = broken
        http_routes[FRANKFURTER] = json_response({"rates": {"EUR": 0.75}})

        rate = resolver.resolve("USD", "EUR")

        assert rate.provider_key == "FRANKFURTER"
        assert rate.rate == Decimal("0.75")
        assert any(
            r["message"] == "rate_provider_unexpected_error"
            and r["provider"] == "EXCHANGERATE_API"
            for r in captured_logs()
        )

    def test_unexpected_error_recorded_as_failure(self, resolver, http_routes):
        def broken(url):
            raise RuntimeError("adapter bug")

        http_routes[ERAPI] = broken

        with pytest.raises(CompositeResolutionFailure) as exc_info:
            resolver.resolve("USD", "EUR")

        first = exc_info.value.failures[0]
        assert first.provider_key == "EXCHANGERATE_API"
        assert first.error.reason == "RuntimeError: adapter bug"
        assert isinstance(first.error.__cause__, RuntimeError)

    def test_resolve_many_does_not_raise(self, resolver, http_routes):
        def broken(url):
            raise RuntimeError("adapter bug")

        http_routes[ERAPI] = broken

        outcomes = resolver.resolve_many("USD", ["EUR"])

        assert not outcomes["EUR"].ok
        assert isinstance(outcomes["EUR"].error, CompositeResolutionFailure)


# =============================================================================
# All providers failing
# =============================================================================


class TestCompositeFailure:
    def test_all_failures_aggregated_in_order(self, resolver, http_routes, json_response):
        http_routes[ERAPI] = requests.Timeout("slow")
        http_routes[FRANKFURTER] = json_response(invalid_json=True)
        http_routes[OPEN_ER] = json_response({"result": "success", "rates": {"GBP": 0.75}})

        with pytest.raises(CompositeResolutionFailure) as exc_info:
            resolver.resolve("USD", "ZWL")

        failure = exc_info.value
        assert failure.code == "RATE_RESOLUTION_FAILED"
        assert (failure.base, failure.target) == ("USD", "ZWL")
        assert [f.provider_key for f in failure.failures] == [
            "EXCHANGERATE_API",
            "FRANKFURTER",
            "OPEN_EXCHANGE",
        ]
        assert isinstance(failure.failures[0].error, TransportError)
        assert isinstance(failure.failures[1].error, MalformedResponseError)
        assert isinstance(failure.last_error, RateNotFoundError)
        assert "tried: EXCHANGERATE_API, FRANKFURTER, OPEN_EXCHANGE" in str(failure)

    def test_failure_reasons_readable(self, resolver):
        with pytest.raises(CompositeResolutionFailure) as exc_info:
            resolver.resolve("USD", "EUR")
        assert all("unrouted URL" in f.reason for f in exc_info.value.failures)

    def test_each_failed_attempt_logged(self, resolver, captured_logs):
        with pytest.raises(CompositeResolutionFailure):
            resolver.resolve("USD", "EUR")

        failed = [r for r in captured_logs() if r["message"] == "rate_provider_failed"]
        assert [r["provider"] for r in failed] == [
            "EXCHANGERATE_API",
            "FRANKFURTER",
            "OPEN_EXCHANGE",
        ]
        assert all(r["currency"] == "EUR" for r in failed)
        assert all(r["error_code"] == "RATE_TRANSPORT_ERROR" for r in failed)

    def test_no_providers(self, clock):
        resolver = ExchangeRateResolver([], clock)
        with pytest.raises(CompositeResolutionFailure) as exc_info:
            resolver.resolve("USD", "EUR")
        assert exc_info.value.failures == ()
        assert exc_info.value.last_error is None


# =============================================================================
# resolve_many
# =============================================================================


class TestResolveMany:
    def test_outcomes_per_currency(self, resolver, http_routes, json_response):
        http_routes[ERAPI] = json_response({"rates": {"EUR": 0.875, "GBP": 0.75}})
        http_routes[FRANKFURTER] = json_response({"rates": {}})
        http_routes[OPEN_ER] = json_response({"result": "error"})

        outcomes = resolver.resolve_many("USD", ["eur", "GBP", "ZWL", "USD"])

        assert set(outcomes) == {"EUR", "GBP", "ZWL", "USD"}
        assert outcomes["EUR"].ok and outcomes["EUR"].rate.rate == Decimal("0.875")
        assert outcomes["GBP"].rate.rate == Decimal("0.75")
        assert outcomes["USD"].rate.provider_name == INTERNAL_PROVIDER
        assert not outcomes["ZWL"].ok
        assert isinstance(outcomes["ZWL"].error, CompositeResolutionFailure)
