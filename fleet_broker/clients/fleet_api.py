"""
Fleet API client wrapper.

Implements the vehicle data adapter contract against the real provider and
the partner account registration endpoint. Every request is signed with a
caller-supplied access token; this client never manages tokens itself.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from fleet_broker.core.config import FleetSettings
from fleet_broker.models.vehicle import VehicleMetrics, parse_vehicle_metrics
from fleet_broker.utils.http import RetryConfig, build_bearer_request, request_with_retry

logger = logging.getLogger(__name__)


class FleetApiError(Exception):
    """Raised when a Fleet API call fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


class VehicleDataAdapter(Protocol):
    async def get_vehicles(self, access_token: str) -> List[Dict[str, Any]]: ...

    async def get_vehicle(self, access_token: str, vehicle_id: str) -> Dict[str, Any]: ...

    async def get_vehicle_data(self, access_token: str, vehicle_id: str) -> Dict[str, Any]: ...

    async def wake_up(self, access_token: str, vehicle_id: str) -> Dict[str, Any]: ...

    def is_awake(self, vehicle: Dict[str, Any]) -> bool: ...

    def parse_metrics(self, vehicle_data: Dict[str, Any]) -> VehicleMetrics: ...


class FleetApiClient:
    """Call Fleet API vehicle and partner endpoints."""

    def __init__(
        self,
        fleet_settings: FleetSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self._fleet = fleet_settings
        self._transport = transport
        self._retry = retry_config or RetryConfig()

    def _url(self, path: str) -> str:
        return f"{self._fleet.api_base_url}{path}"

    async def _send(self, request: httpx.Request, *, retry: bool) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self._fleet.http_timeout_seconds, transport=self._transport
        ) as client:
            try:
                if retry:
                    return await request_with_retry(
                        client.send, request, retry_config=self._retry
                    )
                return await client.send(request)
            except httpx.TimeoutException as exc:
                raise FleetApiError("Fleet API request timed out.", retryable=True) from exc
            except httpx.TransportError as exc:
                raise FleetApiError("Fleet API is unreachable.", retryable=True) from exc

    @staticmethod
    def _unwrap(response: httpx.Response, action: str) -> Any:
        if response.status_code >= 400:
            # Provider bodies go to the log only.
            logger.warning(
                "%s failed (status=%s): %s", action, response.status_code, response.text
            )
            raise FleetApiError(
                f"{action} failed.",
                status_code=response.status_code,
                retryable=response.status_code in (408, 429) or response.status_code >= 500,
            )
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.warning(
                "%s returned an unexpected body (status=%s): %s",
                action,
                response.status_code,
                response.text,
            )
            raise FleetApiError(
                f"{action} returned an unreadable response.",
                status_code=response.status_code,
            )
        return body.get("response")

    async def get_vehicles(self, access_token: str) -> List[Dict[str, Any]]:
        request = build_bearer_request(access_token, "GET", self._url("/api/1/vehicles"))
        response = await self._send(request, retry=True)
        return self._unwrap(response, "Fetching vehicles") or []

    async def get_vehicle(self, access_token: str, vehicle_id: str) -> Dict[str, Any]:
        request = build_bearer_request(
            access_token, "GET", self._url(f"/api/1/vehicles/{vehicle_id}")
        )
        response = await self._send(request, retry=True)
        return self._unwrap(response, "Fetching vehicle") or {}

    async def get_vehicle_data(self, access_token: str, vehicle_id: str) -> Dict[str, Any]:
        request = build_bearer_request(
            access_token, "GET", self._url(f"/api/1/vehicles/{vehicle_id}/vehicle_data")
        )
        response = await self._send(request, retry=True)
        if response.status_code == 408:
            raise FleetApiError(
                "Vehicle may be asleep; wake it and try again.",
                status_code=408,
                retryable=True,
            )
        return self._unwrap(response, "Fetching vehicle data") or {}

    async def wake_up(self, access_token: str, vehicle_id: str) -> Dict[str, Any]:
        request = build_bearer_request(
            access_token, "POST", self._url(f"/api/1/vehicles/{vehicle_id}/wake_up")
        )
        response = await self._send(request, retry=False)
        return self._unwrap(response, "Waking vehicle") or {}

    @staticmethod
    def is_awake(vehicle: Dict[str, Any]) -> bool:
        return vehicle.get("state") == "online"

    @staticmethod
    def parse_metrics(vehicle_data: Dict[str, Any]) -> VehicleMetrics:
        return parse_vehicle_metrics(vehicle_data)

    async def register_partner_account(self, partner_token: str, domain: str) -> Dict[str, Any]:
        """Register ``domain``; a 409 surfaces as ``FleetApiError`` with that status."""
        request = build_bearer_request(
            partner_token,
            "POST",
            self._url("/api/1/partner_accounts"),
            json={"domain": domain},
        )
        response = await self._send(request, retry=True)
        if response.status_code >= 400:
            logger.info(
                "Partner registration for %s returned %s: %s",
                domain,
                response.status_code,
                response.text,
            )
            raise FleetApiError(
                "Partner registration failed.",
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}


__all__ = ["FleetApiClient", "FleetApiError", "VehicleDataAdapter"]
