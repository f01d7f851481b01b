"""Public schema exports."""

from .auth import (
    AuthStatusResponse,
    CallbackResponse,
    LoginResponse,
    LogoutResponse,
    PartnerRegistrationResponse,
    PartnerStatusResponse,
    RefreshResponse,
    UserSummary,
)
from .vehicle import (
    VehicleDataResponse,
    VehicleListResponse,
    VehicleMetricsResponse,
    VehicleResponse,
    VehicleWakeResponse,
)

__all__ = [
    "AuthStatusResponse",
    "CallbackResponse",
    "LoginResponse",
    "LogoutResponse",
    "PartnerRegistrationResponse",
    "PartnerStatusResponse",
    "RefreshResponse",
    "UserSummary",
    "VehicleDataResponse",
    "VehicleListResponse",
    "VehicleMetricsResponse",
    "VehicleResponse",
    "VehicleWakeResponse",
]
