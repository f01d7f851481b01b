"""
Application configuration models and helpers.

Centralizes settings for the OAuth broker, the token lifecycle manager and the
vehicle data adapters so every component reads one configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Optional
from urllib.parse import urlparse

import os

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


def _split_scope_value(value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
    if isinstance(value, tuple):
        return value
    if isinstance(value, list):
        return tuple(value)
    separator = "," if "," in value else " "
    return tuple(scope.strip() for scope in value.split(separator) if scope.strip())


class FleetSettings(BaseSettings):
    """Configuration required for talking to the fleet provider."""

    model_config = SettingsConfigDict(populate_by_name=True)

    client_id: str = Field(..., validation_alias="FLEET_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="FLEET_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="FLEET_REDIRECT_URI")
    auth_base_url: str = Field(
        "https://auth.tesla.com", validation_alias="FLEET_AUTH_BASE_URL"
    )
    token_base_url: str = Field(
        "https://fleet-auth.prd.vn.cloud.tesla.com",
        validation_alias="FLEET_TOKEN_BASE_URL",
        description="Host serving the token endpoint for code, refresh and partner grants.",
    )
    api_base_url: str = Field(
        "https://fleet-api.prd.na.vn.cloud.tesla.com",
        validation_alias="FLEET_API_BASE_URL",
        description="Fleet API host; also used as the token audience.",
    )
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "openid",
            "offline_access",
            "vehicle_device_data",
            "vehicle_cmds",
            "vehicle_charging_cmds",
        ),
        validation_alias="FLEET_SCOPES",
    )
    partner_scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        ("openid", "vehicle_device_data", "vehicle_cmds", "vehicle_charging_cmds"),
        validation_alias="FLEET_PARTNER_SCOPES",
    )
    developer_domain: Optional[str] = Field(
        None,
        validation_alias="FLEET_DEVELOPER_DOMAIN",
        description="Domain registered with the provider; defaults to the redirect URI host.",
    )
    http_timeout_seconds: float = Field(10.0, validation_alias="FLEET_HTTP_TIMEOUT")

    @field_validator("scopes", "partner_scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma- or space-separated string."""
        return _split_scope_value(value)

    @field_validator("auth_base_url", "token_base_url", "api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def audience(self) -> str:
        return self.api_base_url

    @property
    def registration_domain(self) -> Optional[str]:
        if self.developer_domain:
            return self.developer_domain
        return urlparse(str(self.redirect_uri)).hostname


class OAuthSettings(BaseSettings):
    """OAuth flow and token lifecycle configuration."""

    model_config = SettingsConfigDict(populate_by_name=True)

    state_ttl_seconds: int = Field(600, validation_alias="OAUTH_STATE_TTL")
    refresh_margin_seconds: int = Field(300, validation_alias="OAUTH_REFRESH_MARGIN")
    default_expires_in: int = Field(3600, validation_alias="OAUTH_DEFAULT_EXPIRES_IN")
    session_backend: Literal["memory", "sqlite"] = Field(
        "memory",
        validation_alias="OAUTH_SESSION_BACKEND",
        description="Use 'sqlite' when several worker processes share one host.",
    )
    serialize_refresh: bool = Field(
        True,
        validation_alias="OAUTH_SERIALIZE_REFRESH",
        description="Coalesce concurrent refreshes for the same user within a process.",
    )


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(populate_by_name=True)

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    jwt_secret: Optional[str] = Field(None, validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field("HS256", validation_alias="JWT_ALGORITHM")
    app_session_ttl_seconds: int = Field(
        7 * 24 * 60 * 60, validation_alias="APP_SESSION_TTL"
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(populate_by_name=True)

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    api_base_path: str = Field("/api/v1", validation_alias="API_BASE_PATH")
    database_path: str = Field(
        "data/fleet_broker.db", validation_alias="DATABASE_PATH"
    )
    app_redirect_uri: Optional[str] = Field(
        None,
        validation_alias="APP_REDIRECT_URI",
        description="Optional deep link receiving the app token after login.",
    )
    use_mock_vehicles: Optional[bool] = Field(
        None,
        validation_alias="USE_MOCK_VEHICLES",
        description="Serve sample vehicle data; defaults to on in development.",
    )
    register_partner_on_startup: bool = Field(
        False, validation_alias="FLEET_REGISTER_ON_STARTUP"
    )
    wake_up_delay_seconds: float = Field(3.0, validation_alias="WAKE_UP_DELAY")
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    fleet: FleetSettings = Field(default_factory=FleetSettings)

    @property
    def mock_vehicles_enabled(self) -> bool:
        if self.use_mock_vehicles is not None:
            return self.use_mock_vehicles
        return self.environment == "development"


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "FleetSettings",
    "OAuthSettings",
    "SecuritySettings",
    "get_settings",
]
