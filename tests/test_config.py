"""Tests for settings and connection configuration."""
import pytest
from pydantic import ValidationError

from pgsearch.config import ConnectionConfig, Settings, parse_additional_config
from pgsearch.retrieval.exceptions import ConfigurationError


def test_defaults():
    """Test the defaults without any environment."""
    settings = Settings(_env_file=None)

    assert settings.table_name == "documents"
    assert settings.pg_ssl_mode == "no-verify"
    assert settings.distance_strategy == "euclidean"
    assert settings.pg_query_timeout is None
    assert settings.pg_connect_max_retries == 0


def test_settings_from_environment(monkeypatch):
    """Test values are read from environment variables."""
    monkeypatch.setenv("PG_HOST", "db.internal")
    monkeypatch.setenv("TOP_K", "8")
    monkeypatch.setenv("FULL_QUERY", "SELECT * FROM documents WHERE tag = [skill]")

    settings = Settings(_env_file=None)

    assert settings.pg_host == "db.internal"
    assert settings.top_k == "8"
    assert settings.full_query.endswith("[skill]")


@pytest.mark.parametrize(
    "overrides",
    [
        {"pg_ssl_mode": "require"},
        {"distance_strategy": "manhattan"},
        {"pg_pool_min_size": 5, "pg_pool_max_size": 2},
        {"pg_connect_max_retries": -1},
        {"embedding_service_url": "ftp://embeddings"},
    ],
)
def test_invalid_settings(overrides):
    """Test invalid settings are rejected at load time."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_parse_additional_config():
    """Test additional configuration parsing."""
    assert parse_additional_config(None) == {}
    assert parse_additional_config("") == {}
    assert parse_additional_config('{"statement_cache_size": 0}') == {"statement_cache_size": 0}
    assert parse_additional_config({"command_timeout": 5}) == {"command_timeout": 5}


@pytest.mark.parametrize("raw", ["{broken", "[1, 2]", '"text"'])
def test_parse_additional_config_rejects_non_objects(raw):
    """Test malformed additional configuration fails fast."""
    with pytest.raises(ConfigurationError, match="additional configuration|JSON object"):
        parse_additional_config(raw)


def test_connection_config_from_settings():
    """Test connection parameters are resolved from settings."""
    settings = Settings(
        _env_file=None,
        pg_host="db",
        pg_port=6432,
        pg_database="vectors",
        pg_user="reader",
        pg_password="secret",
        pg_ssl_mode="verify",
        pg_acquire_timeout=3.0,
        pg_additional_config='{"command_timeout": 10}',
    )

    config = ConnectionConfig.from_settings(settings)

    assert config.host == "db"
    assert config.port == 6432
    assert config.username == "reader"
    assert config.ssl_mode == "verify"
    assert config.acquire_timeout == 3.0
    assert config.driver_options == {"command_timeout": 10}


def test_connection_config_bad_additional_config():
    """Test a malformed additional configuration surfaces as ConfigurationError."""
    settings = Settings(_env_file=None, pg_additional_config="{nope")
    with pytest.raises(ConfigurationError):
        ConnectionConfig.from_settings(settings)
