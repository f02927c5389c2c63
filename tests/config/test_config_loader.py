"""
Tests for ledger_config -- YAML loading, validation and resolution order.
"""

from decimal import Decimal

import pytest
import yaml

from ledger_config import (
    CONFIG_ENV_VAR,
    DATABASE_URL_ENV_VAR,
    DEFAULT_CONFIG_PATH,
    get_active_config,
)
from ledger_config.loader import load_config, load_yaml_file, parse_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv(DATABASE_URL_ENV_VAR, raising=False)


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="ledger.yaml"):
        path = tmp_path / name
        path.write_text(data if isinstance(data, str) else yaml.safe_dump(data))
        return path

    return _write


# =============================================================================
# Packaged defaults
# =============================================================================


class TestDefaults:
    def test_packaged_defaults(self):
        config = get_active_config()

        assert config.source == str(DEFAULT_CONFIG_PATH)
        assert config.currency.base_currency == "USD"
        assert config.currency.update_frequency == "daily"
        assert [c.code for c in config.currency.supported_currencies] == ["USD", "ZWL"]
        assert config.currency.supported_currencies[1].exchange_rate == Decimal("30")
        assert config.rates.providers == ("EXCHANGERATE_API", "FRANKFURTER", "OPEN_EXCHANGE")
        assert config.rates.timeout_seconds == 5.0
        assert config.scheduler.check_interval_seconds == 3600.0
        assert config.scheduler.initial_delay_seconds == 10.0

    def test_empty_document_uses_schema_defaults(self, write_config):
        config = load_config(write_config(""))
        assert config.database.url == "sqlite:///sales_ledger.db"
        assert config.currency.supported_currencies == ()
        assert config.logging.level == "INFO"

    def test_partial_document(self, write_config):
        config = load_config(
            write_config({"currency": {"base_currency": "eur", "default_display_currency": None}})
        )
        assert config.currency.base_currency == "EUR"
        assert config.currency.default_display_currency is None
        assert config.currency.api_provider == "EXCHANGERATE_API"

    def test_rate_parsed_as_decimal(self):
        config = parse_config(
            {"currency": {"supported_currencies": [{"code": "eur", "exchange_rate": 0.875}]}}
        )
        eur = config.currency.supported_currencies[0]
        assert eur.code == "EUR"
        assert eur.exchange_rate == Decimal("0.875")
        assert eur.is_active is True


# =============================================================================
# Resolution order
# =============================================================================


class TestResolution:
    def test_env_var_path(self, monkeypatch, write_config):
        path = write_config({"currency": {"base_currency": "GBP"}})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert get_active_config().currency.base_currency == "GBP"

    def test_explicit_path_beats_env_var(self, monkeypatch, write_config):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(write_config({}, "env.yaml")))
        path = write_config({"currency": {"base_currency": "ZAR"}}, "explicit.yaml")

        assert get_active_config(path).currency.base_currency == "ZAR"

    def test_database_url_override(self, monkeypatch, write_config):
        monkeypatch.setenv(DATABASE_URL_ENV_VAR, "postgresql://ledger@db/ledger")
        config = get_active_config(write_config({"database": {"url": "sqlite:///x.db"}}))
        assert config.database.url == "postgresql://ledger@db/ledger"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")

    def test_document_not_mapping(self, write_config):
        with pytest.raises(ValueError, match="top level must be a mapping"):
            load_yaml_file(write_config("- a\n- b\n"))

    def test_malformed_yaml(self, write_config):
        with pytest.raises(yaml.YAMLError):
            load_yaml_file(write_config("currency: [unclosed\n"))


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    @pytest.mark.parametrize(
        "data, fragment",
        [
            ({"currency": {"base_currency": "XYZ"}}, "currency.base_currency"),
            ({"currency": {"update_frequency": "monthly"}}, "update_frequency"),
            ({"currency": {"api_provider": "CURRENCYLAYER"}}, "currency.api_provider"),
            ({"currency": {"supported_currencies": {"code": "EUR"}}}, "must be a list"),
            (
                {"currency": {"supported_currencies": [{"code": "EUR", "exchange_rate": "-1"}]}},
                "must be positive",
            ),
            (
                {"currency": {"supported_currencies": [{"code": "EUR", "exchange_rate": "abc"}]}},
                "not a number",
            ),
            ({"rates": {"providers": []}}, "non-empty list"),
            ({"rates": {"providers": ["FRANKFURTER", "FRANKFURTER"]}}, "twice"),
            ({"rates": {"providers": ["NOPE"]}}, "rates.providers"),
            ({"rates": {"timeout_seconds": 0}}, "rates.timeout_seconds"),
            ({"scheduler": {"max_workers": 0}}, "max_workers"),
            ({"scheduler": {"initial_delay_seconds": -1}}, "initial_delay_seconds"),
            ({"scheduler": {"check_interval_seconds": "soon"}}, "must be a number"),
            ({"logging": {"level": "LOUD"}}, "logging.level"),
            ({"database": ["sqlite://"]}, "'database' must be a mapping"),
        ],
    )
    def test_rejected(self, data, fragment):
        with pytest.raises(ValueError, match=fragment):
            parse_config(data)
