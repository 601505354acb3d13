"""
Tests for billing_config: loading, validation, environment overrides and
the config -> kernel bridges.
"""

import pytest
import yaml

from billing_config import DEFAULT_CONFIG_PATH, get_active_config
from billing_config.bridges import build_invoice_selector, build_orchestrator, build_revenue_selector
from billing_config.loader import compute_checksum, load_yaml_file, parse_config
from billing_kernel.db.engine import session_scope
from billing_kernel.exceptions import ConfigurationError
from billing_kernel.selectors.invoice_selector import InvoiceSelector
from tests.conftest import TENANT


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("BILLING_CONFIG", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)


def _write(tmp_path, data, name="settings.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_packaged_defaults_load(self):
        config = get_active_config()
        assert config.source == str(DEFAULT_CONFIG_PATH)
        assert config.reconciliation.default_currency == "USD"
        assert config.reconciliation.workspace_bucket == "workspace"
        assert config.reconciliation.revenue_list_default_limit == 36
        assert config.reconciliation.invoice_list_max_limit == 200
        assert config.database.url.startswith("sqlite")

    def test_checksum_matches_document(self):
        config = get_active_config()
        assert config.checksum == compute_checksum(load_yaml_file(DEFAULT_CONFIG_PATH))

    def test_empty_document_uses_schema_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        config = get_active_config(path)
        assert config.reconciliation.ledger_drain_batch_size == 100
        assert config.logging.level == "INFO"


class TestOverrides:

    def test_explicit_path(self, tmp_path):
        path = _write(tmp_path, {"reconciliation": {"default_currency": "eur"}})
        config = get_active_config(path)
        assert config.reconciliation.default_currency == "EUR"
        assert config.source == str(path)

    def test_env_path(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"reconciliation": {"workspace_bucket": "firm"}})
        monkeypatch.setenv("BILLING_CONFIG", str(path))
        assert get_active_config().reconciliation.workspace_bucket == "firm"

    def test_database_url_env_wins(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"database": {"url": "sqlite:///from-file.db"}})
        monkeypatch.setenv("DATABASE_URL", "postgresql://billing@localhost/billing")
        assert get_active_config(path).database.url == "postgresql://billing@localhost/billing"

    def test_config_trace_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "BILLING_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["dialect"] == "sqlite"


class TestValidation:

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError) as excinfo:
            parse_config({"reconciliation": {"default_curency": "USD"}})
        assert excinfo.value.errors == ("reconciliation.default_curency: unknown setting",)

    def test_unknown_section(self):
        with pytest.raises(ConfigurationError) as excinfo:
            parse_config({"metrics": {}})
        assert "metrics: unknown section" in excinfo.value.errors

    def test_wrong_types_all_reported(self):
        with pytest.raises(ConfigurationError) as excinfo:
            parse_config({"database": {"pool_size": "big", "echo": "yes"}})
        assert len(excinfo.value.errors) == 2

    def test_bool_is_not_an_int(self):
        with pytest.raises(ConfigurationError, match="got bool"):
            parse_config({"reconciliation": {"ledger_drain_batch_size": True}})

    @pytest.mark.parametrize(
        "section, values",
        [
            ("reconciliation", {"default_currency": "XXZ"}),
            ("reconciliation", {"workspace_bucket": "  "}),
            ("reconciliation", {"revenue_list_default_limit": 500}),
            ("reconciliation", {"invoice_list_max_limit": 0}),
            ("reconciliation", {"ledger_drain_batch_size": 0}),
            ("database", {"url": ""}),
            ("logging", {"level": "LOUD"}),
        ],
    )
    def test_invalid_values(self, section, values):
        with pytest.raises(ConfigurationError):
            parse_config({section: values})

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigurationError, match="expected a mapping"):
            parse_config({"database": ["sqlite://"]})

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("database: [unclosed\n")
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            get_active_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestBridges:

    def test_selectors_use_configured_limits(self, tmp_path, session):
        path = _write(
            tmp_path,
            {
                "reconciliation": {
                    "revenue_list_default_limit": 12,
                    "revenue_list_max_limit": 24,
                    "invoice_list_default_limit": 50,
                    "invoice_list_max_limit": 60,
                }
            },
        )
        config = get_active_config(path)
        revenue = build_revenue_selector(config, session)
        invoices = build_invoice_selector(config, session)
        assert (revenue._default_limit, revenue._max_limit) == (12, 24)
        assert (invoices._default_limit, invoices._max_limit) == (50, 60)

    def test_orchestrator_uses_configured_currency(
        self, tmp_path, session_factory, deterministic_clock, make_payload
    ):
        config = get_active_config(_write(tmp_path, {"reconciliation": {"default_currency": "GBP"}}))
        orchestrator = build_orchestrator(config, session_factory, deterministic_clock)
        payload = make_payload()
        del payload["currencyCode"]
        result = orchestrator.process(payload)
        assert result.status.value == "applied"

        with session_scope(session_factory) as s:
            assert InvoiceSelector(s).get(TENANT, "in_1001").currency == "GBP"
