import pytest

from common import (
    ConfigurationError,
    Environment,
    load_app_config,
    load_database_config,
    load_gateway_config,
)

BASE_ENV = {
    "APP_TITLE": "Reconciliation API",
    "APP_VERSION": "1.2.0",
    "ENVIRONMENT": "development",
    "LOG_LEVEL": "debug",
    "DATABASE_URL": "sqlite+aiosqlite:///./dev.db",
}


@pytest.fixture
def env(monkeypatch):
    for key in (
        "GATEWAY_MERCHANT_ID",
        "GATEWAY_AUTH_KEY",
        "GATEWAY_CALLBACK_IPS",
        "GOOGLE_CALENDAR_ID",
        "MEETING_FALLBACK_LINK",
        "LOG_FORMAT",
        "DB_HOST",
    ):
        monkeypatch.delenv(key, raising=False)
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


def test_development_config_loads_with_defaults(env):
    config = load_app_config()

    assert config.environment == Environment.DEVELOPMENT
    assert config.logging.level_value == "DEBUG"
    assert not config.logging.json_output
    assert config.database.is_sqlite
    assert config.gateway is None
    assert config.meeting.duration_minutes == 30
    assert not config.meeting.has_credentials


def test_gateway_config_from_env(env):
    env.setenv("GATEWAY_MERCHANT_ID", "CP0001")
    env.setenv("GATEWAY_AUTH_KEY", "secret-key")
    env.setenv("GATEWAY_CALLBACK_IPS", "27.102.213.200, 27.102.213.201")

    gateway = load_gateway_config()

    assert gateway.merchant_id == "CP0001"
    assert gateway.auth_key.get_secret_value() == "secret-key"
    assert gateway.callback_ips == ("27.102.213.200", "27.102.213.201")
    assert gateway.simulated_prefix == "TX_SIM_"


def test_gateway_requires_auth_key(env):
    env.setenv("GATEWAY_MERCHANT_ID", "CP0001")
    env.delenv("GATEWAY_AUTH_KEY", raising=False)

    with pytest.raises(ConfigurationError):
        load_gateway_config()


def test_production_rejects_debug_and_missing_gateway(env):
    env.setenv("ENVIRONMENT", "production")

    with pytest.raises(ValueError):
        load_app_config()


def test_missing_log_level_is_a_configuration_error(env):
    env.delenv("LOG_LEVEL")

    with pytest.raises(ConfigurationError):
        load_app_config()


def test_database_config_without_url_needs_host(env):
    env.delenv("DATABASE_URL")

    assert load_database_config(Environment.DEVELOPMENT) is None
