"""
Factory functions to provide shared clients and services as FastAPI dependencies.

Services holding process state (pending OAuth sessions, refresh locks,
partner registration) are cached so every request sees the same instance.
"""

from functools import lru_cache

from fleet_broker.clients import (
    FleetApiClient,
    FleetOAuthClient,
    MockVehicleClient,
    SQLiteStore,
)
from fleet_broker.clients.fleet_api import VehicleDataAdapter
from fleet_broker.core.config import get_settings
from fleet_broker.services import (
    AppSessionIssuer,
    FleetTokenService,
    FleetTokenStore,
    InMemoryOAuthSessionStore,
    PartnerRegistrationService,
    SQLiteOAuthSessionStore,
    TokenCipherService,
    UserStore,
    VehicleDataService,
    VehicleStore,
)
from fleet_broker.services.oauth_sessions import OAuthSessionStore


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide shared SQLite record store."""
    return SQLiteStore(_settings().database_path)


@lru_cache()
def get_oauth_session_store() -> OAuthSessionStore:
    """Provide the pending OAuth session store selected by configuration."""
    settings = _settings()
    ttl = settings.oauth.state_ttl_seconds
    if settings.oauth.session_backend == "sqlite":
        return SQLiteOAuthSessionStore(settings.database_path, ttl_seconds=ttl)
    return InMemoryOAuthSessionStore(ttl_seconds=ttl)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.fleet.client_secret
    return TokenCipherService(secret=secret)


@lru_cache()
def get_fleet_token_store() -> FleetTokenStore:
    return FleetTokenStore(get_sqlite_store(), get_token_cipher_service())


@lru_cache()
def get_user_store() -> UserStore:
    return UserStore(get_sqlite_store())


@lru_cache()
def get_vehicle_store() -> VehicleStore:
    return VehicleStore(get_sqlite_store())


@lru_cache()
def get_fleet_oauth_client() -> FleetOAuthClient:
    """Create a singleton fleet OAuth client."""
    return FleetOAuthClient(_settings().fleet)


@lru_cache()
def get_fleet_api_client() -> FleetApiClient:
    return FleetApiClient(_settings().fleet)


@lru_cache()
def get_app_session_issuer() -> AppSessionIssuer:
    return AppSessionIssuer(_settings().security)


@lru_cache()
def get_fleet_token_service() -> FleetTokenService:
    """Provide the token lifecycle manager."""
    settings = _settings()
    return FleetTokenService(
        session_store=get_oauth_session_store(),
        token_store=get_fleet_token_store(),
        user_store=get_user_store(),
        oauth_client=get_fleet_oauth_client(),
        session_issuer=get_app_session_issuer(),
        oauth_settings=settings.oauth,
    )


@lru_cache()
def get_partner_registration_service() -> PartnerRegistrationService:
    settings = _settings()
    return PartnerRegistrationService(
        get_fleet_oauth_client(),
        get_fleet_api_client(),
        default_domain=settings.fleet.registration_domain,
    )


@lru_cache()
def get_vehicle_adapter() -> VehicleDataAdapter:
    """Provide the mock adapter in development, the Fleet API otherwise."""
    if _settings().mock_vehicles_enabled:
        return MockVehicleClient()
    return get_fleet_api_client()


def get_vehicle_data_service() -> VehicleDataService:
    """Build a vehicle data service using configured clients."""
    return VehicleDataService(
        get_fleet_token_service(),
        get_vehicle_adapter(),
        get_vehicle_store(),
        wake_up_delay_seconds=_settings().wake_up_delay_seconds,
    )


__all__ = [
    "get_app_session_issuer",
    "get_fleet_api_client",
    "get_fleet_oauth_client",
    "get_fleet_token_service",
    "get_fleet_token_store",
    "get_oauth_session_store",
    "get_partner_registration_service",
    "get_sqlite_store",
    "get_token_cipher_service",
    "get_user_store",
    "get_vehicle_adapter",
    "get_vehicle_data_service",
    "get_vehicle_store",
]
