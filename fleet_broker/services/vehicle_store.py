"""Async access to vehicles synced from the provider."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fleet_broker.clients.sqlite_store import SQLiteStore
from fleet_broker.models.vehicle import Vehicle


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_vehicle(row: Optional[Dict[str, Any]]) -> Optional[Vehicle]:
    if row is None:
        return None
    return Vehicle.model_validate(row)


def _as_year(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class VehicleStore:
    def __init__(
        self, store: SQLiteStore, *, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self._store = store
        self._clock = clock

    def _now_iso(self) -> str:
        return self._clock().astimezone(timezone.utc).isoformat(timespec="microseconds")

    async def sync_vehicle(self, user_id: int, payload: Dict[str, Any]) -> Optional[Vehicle]:
        """
        Upsert a provider vehicle payload for ``user_id``.

        Returns ``None`` when the payload has no provider id or VIN.
        """
        fleet_vehicle_id = payload.get("id") or payload.get("id_s")
        vin = payload.get("vin")
        if fleet_vehicle_id is None or not vin:
            return None

        config = payload.get("vehicle_config") or {}
        item = {
            "user_id": user_id,
            "fleet_vehicle_id": str(fleet_vehicle_id),
            "vin": vin,
            "display_name": payload.get("display_name"),
            "model": config.get("car_type") or config.get("trim_badging"),
            "year": _as_year(config.get("year")),
            "color": config.get("exterior_color"),
            "state": payload.get("state"),
            "seen_at": self._now_iso(),
        }
        row = await asyncio.to_thread(self._store.upsert_vehicle, item)
        return Vehicle.model_validate(row)

    async def list_vehicles(self, user_id: int) -> List[Vehicle]:
        rows = await asyncio.to_thread(self._store.list_vehicles, user_id)
        return [Vehicle.model_validate(row) for row in rows]

    async def get_owned_vehicle(self, user_id: int, vehicle_id: int) -> Optional[Vehicle]:
        """Return the vehicle only when ``user_id`` owns it."""
        vehicle = _to_vehicle(await asyncio.to_thread(self._store.get_vehicle, vehicle_id))
        if vehicle is None or vehicle.user_id != user_id:
            return None
        return vehicle

    async def update_state(self, vehicle_id: int, state: str) -> Optional[Vehicle]:
        return _to_vehicle(
            await asyncio.to_thread(
                self._store.update_vehicle_state, vehicle_id, state, self._now_iso()
            )
        )


__all__ = ["VehicleStore"]
