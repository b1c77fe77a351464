"""
Shared configuration management for the AAD authentication service.
"""

from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


class AadSettings(BaseSettings):
    """Azure AD tenant/region settings.

    Read-only snapshot consumed by the authentication flow. Values come from
    ``AAD_``-prefixed environment variables (or a ``.env`` file) unless passed
    explicitly.
    """

    model_config = SettingsConfigDict(
        env_prefix="AAD_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True
    )

    enabled: bool = False
    client_id: Optional[str] = None
    client_secret: Optional[SecretStr] = None
    tenant_id: Optional[str] = None
    multi_tenant: bool = False
    directory_location: str = "global"
    allow_users_to_sign_up: bool = True

    # Group sync
    enable_group_sync: bool = False
    enable_client_credential: bool = False

    login_strategy: Optional[str] = "unique"

    # Outbound HTTP
    http_timeout: float = Field(default=10.0, gt=0)
    jwks_cache_ttl: int = Field(default=3600, ge=0)
    clock_skew_seconds: int = Field(default=0, ge=0)

    def has_credentials(self) -> bool:
        """Return True when both the client id and secret are configured."""
        return bool(self.client_id) and self.client_secret is not None and bool(
            self.client_secret.get_secret_value()
        )

    def secret(self) -> str:
        """Return the plain client secret, or an empty string."""
        if self.client_secret is None:
            return ""
        return self.client_secret.get_secret_value()


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)


def get_aad_settings(**overrides) -> AadSettings:
    """Load AAD settings from the environment, applying explicit overrides."""
    return AadSettings(**overrides)
