"""Proxy vehicle data requests on behalf of authenticated users."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

from fleet_broker.clients.fleet_api import VehicleDataAdapter
from fleet_broker.models.vehicle import (
    MetricsPeriod,
    MetricsSummary,
    Vehicle,
    VehicleMetrics,
    summarize_metrics,
)
from fleet_broker.services.fleet_tokens import FleetTokenService
from fleet_broker.services.vehicle_store import VehicleStore

logger = logging.getLogger(__name__)


class VehicleNotFoundError(Exception):
    """Raised when a vehicle id is unknown or belongs to another user."""


class VehicleDataService:
    """Combine a vehicle adapter with just-in-time token refresh."""

    def __init__(
        self,
        token_service: FleetTokenService,
        adapter: VehicleDataAdapter,
        vehicle_store: VehicleStore,
        *,
        wake_up_delay_seconds: float = 3.0,
    ) -> None:
        self._tokens = token_service
        self._adapter = adapter
        self._vehicles = vehicle_store
        self._wake_up_delay = wake_up_delay_seconds

    async def _owned(self, user_id: int, vehicle_id: int) -> Vehicle:
        vehicle = await self._vehicles.get_owned_vehicle(user_id, vehicle_id)
        if vehicle is None:
            raise VehicleNotFoundError(f"Vehicle {vehicle_id} not found.")
        return vehicle

    async def _record_state(self, vehicle: Vehicle, state: Any) -> Vehicle:
        if not state or state == vehicle.state:
            return vehicle
        return await self._vehicles.update_state(vehicle.id, str(state)) or vehicle

    async def list_vehicles(self, *, user_id: int) -> List[Vehicle]:
        """Fetch the user's vehicles from the provider and sync them locally."""
        access_token = await self._tokens.get_valid_access_token(user_id)
        synced: List[Vehicle] = []
        for payload in await self._adapter.get_vehicles(access_token):
            vehicle = await self._vehicles.sync_vehicle(user_id, payload)
            if vehicle is None:
                logger.warning("Skipping provider vehicle without id or VIN for user %s", user_id)
                continue
            synced.append(vehicle)
        return synced

    async def get_vehicle(self, *, user_id: int, vehicle_id: int) -> Dict[str, Any]:
        vehicle = await self._owned(user_id, vehicle_id)
        access_token = await self._tokens.get_valid_access_token(user_id)
        payload = await self._adapter.get_vehicle(access_token, vehicle.fleet_vehicle_id)
        await self._record_state(vehicle, payload.get("state"))
        return payload

    async def get_vehicle_data(
        self, *, user_id: int, vehicle_id: int
    ) -> tuple[Dict[str, Any], VehicleMetrics]:
        """Fetch full vehicle data, waking the vehicle first when it is asleep."""
        vehicle = await self._owned(user_id, vehicle_id)
        fleet_id = vehicle.fleet_vehicle_id
        access_token = await self._tokens.get_valid_access_token(user_id)

        current = await self._adapter.get_vehicle(access_token, fleet_id)
        if not self._adapter.is_awake(current):
            logger.info("Vehicle %s is %s; sending wake up", vehicle.id, current.get("state"))
            await self._adapter.wake_up(access_token, fleet_id)
            await asyncio.sleep(self._wake_up_delay)

        vehicle_data = await self._adapter.get_vehicle_data(access_token, fleet_id)
        await self._record_state(vehicle, vehicle_data.get("state") or "online")
        return vehicle_data, self._adapter.parse_metrics(vehicle_data)

    async def wake_up(self, *, user_id: int, vehicle_id: int) -> tuple[Vehicle, str]:
        """Send a wake command and return the updated vehicle and reported state."""
        vehicle = await self._owned(user_id, vehicle_id)
        access_token = await self._tokens.get_valid_access_token(user_id)
        payload = await self._adapter.wake_up(access_token, vehicle.fleet_vehicle_id)
        state = payload.get("state") or "unknown"
        logger.info("Wake up sent to vehicle %s; state %s", vehicle.id, state)
        return await self._record_state(vehicle, state), state

    async def get_metrics(
        self, *, user_id: int, vehicle_id: int, period: MetricsPeriod = "trip"
    ) -> MetricsSummary:
        """Summarize the latest vehicle data without waking the vehicle."""
        vehicle = await self._owned(user_id, vehicle_id)
        access_token = await self._tokens.get_valid_access_token(user_id)
        vehicle_data = await self._adapter.get_vehicle_data(access_token, vehicle.fleet_vehicle_id)
        await self._record_state(vehicle, vehicle_data.get("state"))
        return summarize_metrics(self._adapter.parse_metrics(vehicle_data), period)


__all__ = ["VehicleDataService", "VehicleNotFoundError"]
