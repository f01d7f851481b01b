"""Service layer exports."""

from .app_sessions import AppSessionIssuer
from .fleet_tokens import CallbackResult, FleetTokenService, LoginRequest
from .oauth_sessions import InMemoryOAuthSessionStore, SQLiteOAuthSessionStore
from .partner_registration import PartnerRegistrationService
from .token_cipher import TokenCipherService
from .token_store import FleetTokenStore
from .user_store import UserStore
from .vehicle_data import VehicleDataService, VehicleNotFoundError
from .vehicle_store import VehicleStore

__all__ = [
    "AppSessionIssuer",
    "CallbackResult",
    "FleetTokenService",
    "FleetTokenStore",
    "InMemoryOAuthSessionStore",
    "LoginRequest",
    "PartnerRegistrationService",
    "SQLiteOAuthSessionStore",
    "TokenCipherService",
    "UserStore",
    "VehicleDataService",
    "VehicleNotFoundError",
    "VehicleStore",
]
