"""Expose constructed client wrappers."""

from .fleet_api import FleetApiClient, FleetApiError
from .fleet_auth import FleetOAuthClient
from .mock_vehicles import MockVehicleClient
from .sqlite_store import SQLiteStore

__all__ = [
    "FleetApiClient",
    "FleetApiError",
    "FleetOAuthClient",
    "MockVehicleClient",
    "SQLiteStore",
]
