"""
Shared configuration management for the Warehouse Access Layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ACCESS_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Quota store
    quota_backend: str = Field(default="redis", description="redis or memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_socket_timeout: float = Field(default=2.0)
    quota_store_timeout_seconds: float = Field(default=0.5)
    # Must stay below quota_store_timeout_seconds.
    redis_command_timeout: float = Field(default=0.4)
    quota_store_failure_threshold: int = Field(default=5)
    quota_store_recovery_timeout: float = Field(default=30.0)

    # Rate limiting
    trust_proxy_headers: bool = Field(default=False)

    # Backend-as-a-service auth provider
    supabase_url: str = Field(default="http://localhost:54321")
    supabase_anon_key: Optional[str] = Field(default=None)
    auth_timeout_seconds: float = Field(default=5.0)

    # Route guard
    login_path: str = Field(default="/login")
    default_path: str = Field(default="/dashboard")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
