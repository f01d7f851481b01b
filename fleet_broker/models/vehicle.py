"""
Vehicle records, metric snapshots and the dashboard summary derived from them.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel

MPH_TO_KMH = 1.60934

MetricsPeriod = Literal["trip", "charge", "all-time"]


class Vehicle(BaseModel):
    """Vehicle synced from the provider and owned by one user."""

    id: int
    user_id: int
    fleet_vehicle_id: str
    vin: str
    display_name: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    color: Optional[str] = None
    state: Optional[str] = None
    last_seen_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class VehicleMetrics(BaseModel):
    speed: float = 0
    speed_unit: Optional[str] = None
    odometer: float = 0
    odometer_unit: str = "miles"
    battery_level: float = 0
    battery_range: float = 0
    est_battery_range: float = 0
    ideal_battery_range: float = 0
    usable_battery_level: float = 0
    charger_power: float = 0
    charge_energy_added: float = 0
    shift_state: str = "P"
    heading: float = 0
    gps_as_of: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    inside_temp: Optional[float] = None
    outside_temp: Optional[float] = None
    is_climate_on: bool = False
    timestamp: datetime


def parse_vehicle_metrics(vehicle_data: Dict[str, Any]) -> VehicleMetrics:
    """Flatten the drive, charge, climate and vehicle state sections."""
    drive = vehicle_data.get("drive_state") or {}
    charge = vehicle_data.get("charge_state") or {}
    climate = vehicle_data.get("climate_state") or {}
    vehicle = vehicle_data.get("vehicle_state") or {}

    # vehicle_state.timestamp is epoch milliseconds
    raw_timestamp = vehicle.get("timestamp")
    if raw_timestamp:
        timestamp = datetime.fromtimestamp(raw_timestamp / 1000, tz=timezone.utc)
    else:
        timestamp = datetime.now(timezone.utc)

    speed = drive.get("speed")
    return VehicleMetrics(
        speed=speed or 0,
        speed_unit="mph" if speed else None,
        odometer=vehicle.get("odometer") or 0,
        battery_level=charge.get("battery_level") or 0,
        battery_range=charge.get("battery_range") or 0,
        est_battery_range=charge.get("est_battery_range") or 0,
        ideal_battery_range=charge.get("ideal_battery_range") or 0,
        usable_battery_level=charge.get("usable_battery_level") or 0,
        charger_power=charge.get("charger_power") or 0,
        charge_energy_added=charge.get("charge_energy_added") or 0,
        shift_state=drive.get("shift_state") or "P",
        heading=drive.get("heading") or 0,
        gps_as_of=drive.get("gps_as_of"),
        latitude=drive.get("latitude"),
        longitude=drive.get("longitude"),
        inside_temp=climate.get("inside_temp"),
        outside_temp=climate.get("outside_temp"),
        is_climate_on=bool(climate.get("is_climate_on")),
        timestamp=timestamp,
    )


class CurrentSnapshot(BaseModel):
    speed: int = 0
    speed_unit: str = "kmh"
    battery_level: float = 0
    shift_state: str = "P"
    timestamp: datetime


class LiveConsumption(BaseModel):
    rate: int = 0
    efficiency: float = 0


class AverageEfficiency(BaseModel):
    efficiency: int = 0
    distance: int = 0


class EnergyUsage(BaseModel):
    total: float = 0
    avg_consumption: int = 180


class MetricsSummary(BaseModel):
    """Dashboard figures derived from one metric snapshot."""

    current: CurrentSnapshot
    live_consumption: LiveConsumption
    average_efficiency: AverageEfficiency
    energy_usage: EnergyUsage
    period: MetricsPeriod = "trip"


def summarize_metrics(metrics: VehicleMetrics, period: MetricsPeriod = "trip") -> MetricsSummary:
    """
    Reduce a snapshot to dashboard figures.

    Speed and distance are reported in km/h and km. The figures are
    estimates from the battery level; ``period`` is echoed back and does
    not yet select a history window.
    """
    speed_kmh = round(metrics.speed * MPH_TO_KMH)
    battery = metrics.battery_level

    if metrics.speed:
        rate = round(150 * max(1, metrics.speed / 100))
    else:
        rate = 0

    if metrics.charge_energy_added > 0:
        energy_total = metrics.charge_energy_added
    else:
        # 75 kWh pack, a quarter of the current charge
        energy_total = battery * 0.75 * 0.25

    return MetricsSummary(
        current=CurrentSnapshot(
            speed=speed_kmh,
            battery_level=battery,
            shift_state=metrics.shift_state,
            timestamp=metrics.timestamp,
        ),
        live_consumption=LiveConsumption(
            rate=rate,
            efficiency=min(100, battery * 1.2) if battery else 70,
        ),
        average_efficiency=AverageEfficiency(
            efficiency=round(battery * 1.1) if battery else 81,
            distance=round(metrics.odometer * MPH_TO_KMH) if metrics.odometer else 100,
        ),
        energy_usage=EnergyUsage(total=round(energy_total, 2)),
        period=period,
    )


__all__ = [
    "AverageEfficiency",
    "CurrentSnapshot",
    "EnergyUsage",
    "LiveConsumption",
    "MPH_TO_KMH",
    "MetricsPeriod",
    "MetricsSummary",
    "Vehicle",
    "VehicleMetrics",
    "parse_vehicle_metrics",
    "summarize_metrics",
]
