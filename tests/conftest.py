"""
Pytest fixtures for the sales ledger test suite.

Provides:
- SQLite file databases (one per test) with the production engine recipe
- Deterministic clock
- Seeded currency settings and a sale fact factory
- unittest.mock stand-ins for the rate providers' HTTP session
- Structured log capture
"""

import itertools
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from unittest import mock

import pytest
import requests
from sqlalchemy.orm import sessionmaker

from ledger_kernel.db.engine import build_engine, create_tables, session_scope
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.facts import SaleFact, SaleKind
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.services.currency_settings_service import (
    CurrencySettingsService,
    SettingsSeed,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "posting_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    """SQLite file database; file-backed so threads get real connections."""
    eng = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """
    One session for the test body.

    The first statement takes the SQLite write lock until the test ends, so
    tests that also drive other sessions (updater, threads) must not use it.
    """
    s = session_factory()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2025, 6, 2, 9, 0, 0, tzinfo=timezone.utc))


# =============================================================================
# Currency settings
# =============================================================================


@pytest.fixture
def seed_settings(session_factory):
    """
    Create the settings singleton in its own committed transaction.

    Usage::

        snapshot = seed_settings(auto_update_rates=False)
    """

    def _seed(**overrides):
        seed = SettingsSeed(**overrides)
        with session_scope(session_factory) as s:
            service = CurrencySettingsService(s)
            service.get_or_create_singleton(seed)
            return service.snapshot()

    return _seed


@pytest.fixture
def seeded_settings(seed_settings):
    """Default settings: USD base, ZWL supported at 30."""
    return seed_settings()


@pytest.fixture
def read_settings(session_factory):
    """Fresh snapshot read in its own short transaction."""

    def _read():
        with session_scope(session_factory) as s:
            return CurrencySettingsService(s).snapshot()

    return _read


# =============================================================================
# Sale facts
# =============================================================================


@pytest.fixture
def make_fact():
    """
    Build SaleFacts with unique references.

    Usage::

        fact = make_fact(total="45000", total_tax="6750", currency="ZWL",
                         exchange_rate="30")
    """
    counter = itertools.count(1)

    def _make(kind=SaleKind.POS, total="100", total_tax="0", **kwargs):
        n = next(counter)
        kind = SaleKind(kind)
        prefix = "POS" if kind is SaleKind.POS else "INV"
        kwargs.setdefault("reference", f"{prefix}-{n:05d}")
        kwargs.setdefault("reference_id", f"{prefix.lower()}-{n}")
        if kwargs.get("exchange_rate") is not None:
            kwargs["exchange_rate"] = Decimal(str(kwargs["exchange_rate"]))
        return SaleFact(
            kind=kind,
            total=Decimal(str(total)),
            total_tax=Decimal(str(total_tax)),
            **kwargs,
        )

    return _make


# =============================================================================
# HTTP fakes for rate providers
# =============================================================================


@pytest.fixture
def json_response():
    """Factory for fake ``requests.Response`` objects."""

    def _make(payload=None, status_code=200, invalid_json=False):
        response = mock.Mock(spec=requests.Response)
        response.status_code = status_code
        if invalid_json:
            response.json.side_effect = ValueError("Expecting value: line 1 column 1")
        else:
            response.json.return_value = payload
        return response

    return _make


@pytest.fixture
def http_routes():
    """
    URL prefix -> response, exception instance, or ``callable(url)``.

    Unrouted URLs raise ``requests.ConnectionError``.
    """
    return {}


@pytest.fixture
def http_session(http_routes):
    """Mock ``requests.Session`` answering from ``http_routes``."""

    def _get(url, headers=None, timeout=None):
        for prefix, outcome in http_routes.items():
            if url.startswith(prefix):
                if isinstance(outcome, BaseException):
                    raise outcome
                if callable(outcome) and not isinstance(outcome, mock.Mock):
                    return outcome(url)
                return outcome
        raise requests.ConnectionError(f"unrouted URL {url}")

    session = mock.Mock(spec=requests.Session)
    session.get.side_effect = _get
    return session
