from pathlib import Path

import pytest

from topup_pricing.config.settings import Settings, get_settings, reset_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings()
    yield
    reset_settings()


def test_defaults(tmp_path, monkeypatch):
    for name in ("DATA_DIR", "MAX_PRODUCTS", "LOG_LEVEL", "LOG_JSON"):
        monkeypatch.delenv(f"TOPUP_PRICING_{name}", raising=False)

    settings = Settings.load(project_root=tmp_path)

    assert settings.data_dir == tmp_path / "data"
    assert settings.max_products_per_request == 100
    assert settings.log_level == "INFO"
    assert settings.log_json is True


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("TOPUP_PRICING_DATA_DIR", str(tmp_path / "orgs"))
    monkeypatch.setenv("TOPUP_PRICING_MAX_PRODUCTS", "25")
    monkeypatch.setenv("TOPUP_PRICING_LOG_LEVEL", "debug")
    monkeypatch.setenv("TOPUP_PRICING_LOG_JSON", "false")

    settings = Settings.load(project_root=tmp_path)

    assert settings.data_dir == Path(tmp_path / "orgs")
    assert settings.max_products_per_request == 25
    assert settings.log_level == "DEBUG"
    assert settings.log_json is False


def test_get_settings_is_cached_until_reset(monkeypatch):
    monkeypatch.setenv("TOPUP_PRICING_MAX_PRODUCTS", "10")
    first = get_settings()
    monkeypatch.setenv("TOPUP_PRICING_MAX_PRODUCTS", "20")

    assert get_settings() is first
    reset_settings()
    assert get_settings().max_products_per_request == 20
