"""Tests for Config class: settings persistence and retrieval."""

import json

import pytest

from shop_ledger.config import Config, _load_settings, _save_settings


@pytest.fixture
def settings_file(tmp_path):
    """Temporary settings file for isolation."""
    return tmp_path / "settings.json"


@pytest.fixture(autouse=True)
def isolate_config(settings_file, monkeypatch):
    """Redirect settings I/O to temp file so tests don't touch real config."""
    import shop_ledger.config as config_mod
    monkeypatch.setattr(config_mod, "_SETTINGS_FILE", settings_file)

    saved = {
        "DEFAULT_TAX_RATE": Config.DEFAULT_TAX_RATE,
        "DEFAULT_LABOR_RATE": Config.DEFAULT_LABOR_RATE,
        "DEFAULT_PAYMENT_METHOD": Config.DEFAULT_PAYMENT_METHOD,
        "DEFAULT_REORDER_LEVEL": Config.DEFAULT_REORDER_LEVEL,
    }
    yield
    for attr, val in saved.items():
        setattr(Config, attr, val)


class TestConfigDefaults:
    """Verify default configuration values."""

    def test_database_timeout_is_float(self):
        assert isinstance(Config.DATABASE_TIMEOUT, float)
        assert Config.DATABASE_TIMEOUT > 0

    def test_invoice_defaults(self):
        assert Config.DEFAULT_TAX_RATE >= 0
        assert Config.DEFAULT_LABOR_RATE > 0
        assert Config.DEFAULT_PAYMENT_METHOD

    def test_temp_id_prefix(self):
        assert Config.TEMP_ID_PREFIX == "temp-"

    def test_database_path_under_project(self):
        assert Config.DATABASE_PATH.suffix == ".db"


class TestConfigUpdates:
    def test_update_invoice_defaults(self, settings_file):
        Config.update_invoice_defaults(8.25, 95, "card")
        assert Config.DEFAULT_TAX_RATE == 8.25
        assert Config.DEFAULT_LABOR_RATE == 95.0
        assert Config.DEFAULT_PAYMENT_METHOD == "card"

        data = json.loads(settings_file.read_text(encoding="utf-8"))
        assert data["default_tax_rate"] == 8.25
        assert data["default_labor_rate"] == 95.0
        assert data["default_payment_method"] == "card"

    def test_update_reorder_level_keeps_other_settings(self, settings_file):
        Config.update_invoice_defaults(5, 80, "cash")
        Config.update_reorder_level(3)
        data = json.loads(settings_file.read_text(encoding="utf-8"))
        assert data["default_reorder_level"] == 3
        assert data["default_tax_rate"] == 5.0


class TestSettingsFile:
    def test_load_missing_file(self):
        assert _load_settings() == {}

    def test_save_and_load(self):
        _save_settings({"default_tax_rate": 6})
        assert _load_settings() == {"default_tax_rate": 6}

    def test_corrupt_file_ignored(self, settings_file):
        settings_file.write_text("{not json", encoding="utf-8")
        assert _load_settings() == {}


class TestConfigFeedsInvoicing:
    def test_payment_method_default_follows_config(self, monkeypatch):
        from shop_ledger.invoicing.payments import normalize_payment
        monkeypatch.setattr(Config, "DEFAULT_PAYMENT_METHOD", "card")
        payment = normalize_payment({"amount": 1, "date": "2024-01-01"}, 1)
        assert payment.method == "card"
