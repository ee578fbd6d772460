"""
Shared configuration management for the products platform.
"""

import os
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # Environment
    env: str = Field(default="production", validation_alias="NODE_ENV")
    log_level: str = "info"
    allowed_origins: str = "http://localhost:3000"

    # Identity provider
    keycloak_server_url: str = "http://localhost:8080"
    keycloak_realm: str = "myrealm"
    keycloak_client_id: str = "backend"
    keycloak_client_secret: str = "secret"
    keycloak_audience: str = "account"

    # Downstream services
    auth_service_url: str = "http://localhost:3005"
    products_service_url: str = "http://localhost:3002"
    suppliers_service_url: str = "http://localhost:3003"
    users_service_url: str = "http://localhost:3004"
    service_timeout_seconds: float = 5.0
    service_retries: int = 3
    health_check_timeout_seconds: float = 3.0
    health_check_deadline_seconds: float = 5.0

    # Token verification
    jwks_cache_max_entries: int = 5
    jwks_cache_max_age_seconds: float = 600.0
    jwks_timeout_seconds: float = 30.0
    jwks_requests_per_minute: int = 10

    # Database
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_name: str = "northwind"
    db_pool_max_size: int = 20
    db_pool_idle_timeout_seconds: float = 30.0
    db_connect_timeout_seconds: float = 2.0

    @property
    def is_development(self) -> bool:
        return self.env.lower() == "development"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def keycloak_issuer(self) -> str:
        return f"{self.keycloak_server_url.rstrip('/')}/realms/{self.keycloak_realm}"

    @property
    def jwks_url(self) -> str:
        return f"{self.keycloak_issuer}/protocol/openid-connect/certs"

    @property
    def token_url(self) -> str:
        return f"{self.keycloak_issuer}/protocol/openid-connect/token"

    @property
    def introspect_url(self) -> str:
        return f"{self.keycloak_issuer}/protocol/openid-connect/token/introspect"

    @property
    def logout_url(self) -> str:
        return f"{self.keycloak_issuer}/protocol/openid-connect/logout"

    @property
    def well_known_url(self) -> str:
        return f"{self.keycloak_issuer}/.well-known/openid-configuration"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service.

    ``PORT`` in the environment wins over the service's default port.
    """
    port = int(os.getenv("PORT", port))
    return ServiceConfig(service_name=service_name, port=port, **overrides)
