"""Sample-data vehicle adapter for development without provider access."""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Dict, List

from fleet_broker.models.vehicle import VehicleMetrics, parse_vehicle_metrics

logger = logging.getLogger(__name__)

_MOCK_VEHICLE: Dict[str, Any] = {
    "id": 123456789,
    "vehicle_id": 987654321,
    "vin": "5YJ3E1EA1KF123456",
    "display_name": "My Vehicle",
    "state": "online",
    "vehicle_config": {
        "car_type": "Model 3",
        "exterior_color": "MidnightSilverMetallic",
        "trim_badging": "Long Range",
        "year": 2023,
    },
}

_MOCK_VEHICLE_DATA: Dict[str, Any] = {
    "drive_state": {
        "speed": None,
        "shift_state": "P",
        "heading": 0,
        "latitude": 37.7749,
        "longitude": -122.4194,
    },
    "charge_state": {
        "battery_level": 74,
        "battery_range": 245.6,
        "est_battery_range": 240.2,
        "ideal_battery_range": 250.8,
        "usable_battery_level": 73,
        "charge_energy_added": 15.5,
        "charger_power": 0,
        "charging_state": "Disconnected",
    },
    "climate_state": {
        "inside_temp": 20.5,
        "outside_temp": 18.2,
        "is_climate_on": False,
    },
    "vehicle_state": {
        "odometer": 12456.8,
        "software_version": "2024.14.9",
    },
    "state": "online",
}


class MockVehicleClient:
    """Return fixed sample vehicles; the access token is accepted and ignored."""

    async def get_vehicles(self, access_token: str) -> List[Dict[str, Any]]:
        logger.debug("Serving mock vehicle list")
        return [copy.deepcopy(_MOCK_VEHICLE)]

    async def get_vehicle(self, access_token: str, vehicle_id: str) -> Dict[str, Any]:
        return copy.deepcopy(_MOCK_VEHICLE)

    async def get_vehicle_data(self, access_token: str, vehicle_id: str) -> Dict[str, Any]:
        data = copy.deepcopy(_MOCK_VEHICLE_DATA)
        now = time.time()
        data["drive_state"]["gps_as_of"] = int(now)
        data["vehicle_state"]["timestamp"] = int(now * 1000)
        return data

    async def wake_up(self, access_token: str, vehicle_id: str) -> Dict[str, Any]:
        return {**copy.deepcopy(_MOCK_VEHICLE), "state": "online"}

    @staticmethod
    def is_awake(vehicle: Dict[str, Any]) -> bool:
        return vehicle.get("state") == "online"

    @staticmethod
    def parse_metrics(vehicle_data: Dict[str, Any]) -> VehicleMetrics:
        return parse_vehicle_metrics(vehicle_data)


__all__ = ["MockVehicleClient"]
