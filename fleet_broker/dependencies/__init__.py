"""Expose dependency helpers for FastAPI routers."""

from .auth import get_current_user_id
from .clients import (
    get_app_session_issuer,
    get_fleet_api_client,
    get_fleet_oauth_client,
    get_fleet_token_service,
    get_fleet_token_store,
    get_oauth_session_store,
    get_partner_registration_service,
    get_sqlite_store,
    get_token_cipher_service,
    get_user_store,
    get_vehicle_adapter,
    get_vehicle_data_service,
    get_vehicle_store,
)
from .config import get_app_settings

__all__ = [
    "get_app_session_issuer",
    "get_app_settings",
    "get_current_user_id",
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
