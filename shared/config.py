"""
Shared configuration management for the entitlements engine.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings.

    Every field can be overridden with an ``ACCESS_`` prefixed environment
    variable (``ACCESS_LOG_LEVEL``, ``ACCESS_POSTGRES_DSN``...). List fields
    take a JSON array.
    """

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/access")
    postgres_command_timeout: float = Field(default=30.0)
    postgres_pool_min_size: int = Field(default=2)
    postgres_pool_max_size: int = Field(default=10)

    # Entitlement storage backend: "postgres" or "memory"
    entitlements_store: str = Field(default="postgres")

    # Authorization
    staff_email_domains: List[str] = Field(default_factory=lambda: ["@toeverything.info"])
    staff_emails: List[str] = Field(default_factory=list)

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_requests: int = Field(default=10, ge=1)
    rate_limit_window_seconds: int = Field(default=60, ge=1)

    # Observability
    enable_metrics: bool = Field(default=True)
    tracing_enabled: bool = Field(default=False)
    otel_exporter_endpoint: Optional[str] = Field(default=None)
    tracing_console: bool = Field(default=False)


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
