"""
Shared configuration management for the spell metadata cache.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings.

    Every field can be overridden through an environment variable prefixed
    with ``SPELLS_`` (for example ``SPELLS_REFRESH_INTERVAL_SECONDS``).
    """

    model_config = SettingsConfigDict(
        env_prefix="SPELLS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Record store
    store_backend: str = "postgres"
    postgres_dsn: str = "postgres://localhost:5432/spells"
    postgres_min_pool_size: int = 2
    postgres_max_pool_size: int = 10

    # Freshness
    refresh_interval_seconds: int = 86400
    default_locale: str = "en_US"

    # Upstream (Blizzard Game Data API)
    blizzard_region: str = "us"
    blizzard_api_url: Optional[str] = None
    blizzard_oauth_url: str = "https://oauth.battle.net/token"
    blizzard_client_id: str = ""
    blizzard_client_secret: str = ""
    upstream_timeout_seconds: float = 10.0
    upstream_failure_threshold: int = 5
    upstream_recovery_timeout: float = 30.0
    upstream_retry_attempts: int = 3
    upstream_retry_base_delay: float = 0.5
    upstream_retry_max_delay: float = 5.0

    @property
    def resolved_blizzard_api_url(self) -> str:
        """API base URL, derived from the region unless set explicitly."""
        if self.blizzard_api_url:
            return self.blizzard_api_url.rstrip("/")
        return f"https://{self.blizzard_region}.api.blizzard.com"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
