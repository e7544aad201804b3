from __future__ import annotations

from iotc_registration.config import GENERIC_ERROR_MESSAGE, AppConfig


def test_defaults():
    config = AppConfig()

    assert config.provisioning_host == "global.azure-devices-provisioning.net"
    assert config.client_log_level == "DEBUG"
    assert config.error_message == GENERIC_ERROR_MESSAGE


def test_from_env_overrides_endpoints(monkeypatch):
    monkeypatch.setenv("IOTC_LOOKUP_URL", "https://codes.example.com/verify")
    monkeypatch.setenv("IOTC_PROVISIONING_HOST", "dps.example.net")
    monkeypatch.delenv("IOTC_LOG_LEVEL", raising=False)

    config = AppConfig.from_env(lookup_timeout_s=3)

    assert config.lookup_url == "https://codes.example.com/verify"
    assert config.provisioning_host == "dps.example.net"
    assert config.log_level == "INFO"
    assert config.lookup_timeout_s == 3


def test_from_env_ignores_empty_values(monkeypatch):
    monkeypatch.setenv("IOTC_LOOKUP_URL", "")
    monkeypatch.delenv("IOTC_PROVISIONING_HOST", raising=False)
    monkeypatch.setenv("IOTC_LOG_LEVEL", "debug")

    config = AppConfig.from_env()

    assert config.lookup_url == AppConfig().lookup_url
    assert config.log_level == "debug"
