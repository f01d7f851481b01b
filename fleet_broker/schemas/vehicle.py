"""Schemas for proxied vehicle data."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, Field

from fleet_broker.models.vehicle import MetricsSummary, Vehicle, VehicleMetrics


class VehicleListResponse(BaseModel):
    success: bool = True
    vehicles: List[Vehicle] = Field(default_factory=list)


class VehicleResponse(BaseModel):
    success: bool = True
    vehicle: Dict[str, Any]


class VehicleDataResponse(BaseModel):
    success: bool = True
    vehicle: Dict[str, Any] = Field(..., description="Raw vehicle data from the provider.")
    metrics: VehicleMetrics


class VehicleWakeResponse(BaseModel):
    success: bool = True
    vehicle: Vehicle
    state: str
    message: str = "Vehicle wake command sent"


class VehicleMetricsResponse(BaseModel):
    success: bool = True
    metrics: MetricsSummary


__all__ = [
    "VehicleDataResponse",
    "VehicleListResponse",
    "VehicleMetricsResponse",
    "VehicleResponse",
    "VehicleWakeResponse",
]
