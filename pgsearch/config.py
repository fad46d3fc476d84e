"""Configuration settings for the pgvector retrieval service."""
import json
from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pgsearch.retrieval.exceptions import ConfigurationError

SSL_MODES = ("no-verify", "verify", "disable")
DISTANCE_STRATEGIES = ("euclidean", "cosine", "inner_product")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service settings
    app_name: str = "pgsearch"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8004

    # Postgres connection
    pg_host: str = "localhost"
    pg_port: int = 5432
    pg_database: str = "postgres"
    pg_user: str = "postgres"
    pg_password: str = ""
    # no-verify encrypts without checking the server certificate
    pg_ssl_mode: str = "no-verify"
    # JSON object merged into the asyncpg connect arguments
    pg_additional_config: str | None = None

    # Pool settings
    pg_pool_min_size: int = 1
    pg_pool_max_size: int = 10
    pg_acquire_timeout: float | None = None  # seconds, None waits forever
    pg_query_timeout: float | None = None  # seconds, None waits forever
    pg_connect_max_retries: int = 0
    pg_retry_delay: float = 1.0  # seconds

    # Vector table settings
    table_name: str = "documents"
    top_k: str | None = None  # raw value, parsed with parse_top_k
    where_clause: str | None = None  # operator-authored, appended to the WHERE clause
    full_query: str | None = None  # operator-authored template for multi-key search
    distance_strategy: str = "euclidean"

    # Embedding service settings
    embedding_service_url: str = "http://localhost:8003"
    embedding_service_timeout: int = 60
    embedding_max_retries: int = 3
    embedding_retry_delay: float = 1.0  # seconds
    embedding_cache_ttl: int = 86400 * 7  # 7 days

    # CORS settings
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @model_validator(mode="after")
    def validate_config(self):
        """Validate all required configuration."""
        errors = []

        if self.pg_ssl_mode not in SSL_MODES:
            errors.append(f"PG_SSL_MODE must be one of {', '.join(SSL_MODES)}")

        if self.distance_strategy not in DISTANCE_STRATEGIES:
            errors.append(f"DISTANCE_STRATEGY must be one of {', '.join(DISTANCE_STRATEGIES)}")

        if self.pg_pool_min_size < 0 or self.pg_pool_max_size < 1:
            errors.append("PG_POOL_MIN_SIZE must be >= 0 and PG_POOL_MAX_SIZE >= 1")
        elif self.pg_pool_min_size > self.pg_pool_max_size:
            errors.append("PG_POOL_MIN_SIZE cannot exceed PG_POOL_MAX_SIZE")

        if self.pg_connect_max_retries < 0:
            errors.append("PG_CONNECT_MAX_RETRIES cannot be negative")

        if not self.embedding_service_url:
            errors.append("EMBEDDING_SERVICE_URL is required")
        elif not self.embedding_service_url.startswith("http"):
            errors.append("EMBEDDING_SERVICE_URL must be a valid HTTP/HTTPS URL")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields from .env
    )


def parse_additional_config(raw: Any) -> Dict[str, Any]:
    """
    Parse the operator's additional connection configuration.

    Args:
        raw: JSON object string, mapping, or None

    Returns:
        Mapping of driver options (empty when nothing is configured)

    Raises:
        ConfigurationError: If the value is not a JSON object
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Invalid JSON in the additional configuration: {e}") from e
    if not isinstance(parsed, dict):
        raise ConfigurationError("Additional configuration must be a JSON object")
    return parsed


class ConnectionConfig(BaseModel):
    """Resolved, immutable connection parameters for the store."""

    host: str
    port: int = 5432
    database: str
    username: str
    password: str = Field("", repr=False)
    ssl_mode: Literal["no-verify", "verify", "disable"] = "no-verify"
    min_size: int = 1
    max_size: int = 10
    acquire_timeout: float | None = None
    driver_options: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConnectionConfig":
        """Build connection parameters from settings, parsing the additional configuration."""
        return cls(
            host=settings.pg_host,
            port=settings.pg_port,
            database=settings.pg_database,
            username=settings.pg_user,
            password=settings.pg_password,
            ssl_mode=settings.pg_ssl_mode,
            min_size=settings.pg_pool_min_size,
            max_size=settings.pg_pool_max_size,
            acquire_timeout=settings.pg_acquire_timeout,
            driver_options=parse_additional_config(settings.pg_additional_config),
        )


settings = Settings()
