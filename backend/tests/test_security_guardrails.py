import pytest

from core import config as config_module


def _reset_settings_cache():
    config_module.get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _fresh_settings():
    yield
    _reset_settings_cache()


def test_non_local_debug_mode_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "true")
    _reset_settings_cache()

    with pytest.raises(ValueError, match="debug=true"):
        config_module.get_settings()


def test_non_local_without_debug_starts(monkeypatch):
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("DEBUG", "false")
    _reset_settings_cache()

    assert config_module.get_settings().app_env == "staging"


def test_local_allows_debug(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("DEBUG", "true")
    _reset_settings_cache()

    settings = config_module.get_settings()
    assert settings.app_env == "local"
    assert settings.debug is True


def test_agent_intervals_from_environment(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("SHIPMENT_RISK_INTERVAL_MINUTES", "7")
    monkeypatch.setenv("AGENT_LOCK_TIMEOUT_SECONDS", "600")
    _reset_settings_cache()

    settings = config_module.get_settings()
    assert settings.shipment_risk_interval_minutes == 7
    assert settings.agent_lock_timeout_seconds == 600
    assert settings.supplier_risk_interval_minutes == 240
