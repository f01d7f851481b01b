"""Tests for the vehicle data proxy routes."""

from __future__ import annotations

from datetime import timedelta
from typing import AsyncIterator

import httpx
import pytest

from fleet_broker.clients.fleet_api import FleetApiClient, FleetApiError
from fleet_broker.clients.mock_vehicles import MockVehicleClient
from fleet_broker.clients.sqlite_store import SQLiteStore
from fleet_broker.core.config import FleetSettings
from fleet_broker.dependencies import (
    get_app_session_issuer,
    get_vehicle_data_service,
)
from fleet_broker.main import create_app
from fleet_broker.models.oauth import TokenGrant
from fleet_broker.services.app_sessions import AppSessionIssuer
from fleet_broker.services.fleet_tokens import FleetTokenService
from fleet_broker.services.token_cipher import TokenCipherService
from fleet_broker.services.token_store import FleetTokenStore
from fleet_broker.services.user_store import UserStore
from fleet_broker.services.vehicle_data import VehicleDataService
from fleet_broker.services.vehicle_store import VehicleStore
from fleet_broker.utils.http import RetryConfig

from _fakes import FakeClock, FakeOAuthClient

BASE = "/api/v1"
PROVIDER_DETAIL = "INTERNAL-PROVIDER-SECRET-DETAIL"


class RejectingVehicleClient(MockVehicleClient):
    async def get_vehicles(self, access_token: str) -> list:
        raise FleetApiError("Fetching vehicles failed.", status_code=401)


class AsleepVehicleClient(MockVehicleClient):
    async def get_vehicles(self, access_token: str) -> list:
        vehicles = await super().get_vehicles(access_token)
        return [{**vehicle, "state": "asleep"} for vehicle in vehicles]


def _failing_fleet_api() -> FleetApiClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": PROVIDER_DETAIL, "message": PROVIDER_DETAIL})

    return FleetApiClient(
        FleetSettings(
            FLEET_CLIENT_ID="client-123",
            FLEET_CLIENT_SECRET="secret-456",
            FLEET_REDIRECT_URI="https://broker.example.com/callback",
            FLEET_API_BASE_URL="https://api.example.com",
        ),
        transport=httpx.MockTransport(handler),
        retry_config=RetryConfig(attempts=1, backoff_seconds=0),
    )


@pytest.fixture
def adapter() -> MockVehicleClient:
    return MockVehicleClient()


@pytest.fixture
def app(
    token_service: FleetTokenService,
    session_issuer: AppSessionIssuer,
    vehicle_store: VehicleStore,
    adapter,
):
    application = create_app()
    service = VehicleDataService(token_service, adapter, vehicle_store, wake_up_delay_seconds=0)
    application.dependency_overrides[get_vehicle_data_service] = lambda: service
    application.dependency_overrides[get_app_session_issuer] = lambda: session_issuer
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as http_client:
        yield http_client


async def _connected_user(
    user_store: UserStore,
    token_store: FleetTokenStore,
    session_issuer: AppSessionIssuer,
    clock: FakeClock,
    email: str = "driver@example.com",
) -> tuple[int, dict]:
    user = await user_store.create_user(email=email, name="Driver")
    await token_store.upsert_token(
        user.id,
        TokenGrant(
            access_token="access-1",
            refresh_token="refresh-1",
            expires_in=3600,
            expires_at=clock() + timedelta(hours=1),
        ),
        updated_at=clock(),
    )
    return user.id, {"Authorization": f"Bearer {session_issuer.issue(user)}"}


async def _first_vehicle_id(client: httpx.AsyncClient, headers: dict) -> int:
    response = await client.get(f"{BASE}/vehicles", headers=headers)
    assert response.status_code == 200
    return response.json()["vehicles"][0]["id"]


@pytest.mark.anyio
async def test_list_vehicles(
    client: httpx.AsyncClient,
    user_store: UserStore,
    token_store: FleetTokenStore,
    session_issuer: AppSessionIssuer,
    vehicle_store: VehicleStore,
    clock: FakeClock,
) -> None:
    user_id, headers = await _connected_user(user_store, token_store, session_issuer, clock)

    response = await client.get(f"{BASE}/vehicles", headers=headers)

    assert response.status_code == 200
    [vehicle] = response.json()["vehicles"]
    assert vehicle["display_name"] == "My Vehicle"
    assert vehicle["vin"] == "5YJ3E1EA1KF123456"
    assert vehicle["fleet_vehicle_id"] == "123456789"
    assert vehicle["model"] == "Model 3"
    assert [v.id for v in await vehicle_store.list_vehicles(user_id)] == [vehicle["id"]]


@pytest.mark.anyio
async def test_vehicle_data_includes_metrics(
    client: httpx.AsyncClient,
    user_store: UserStore,
    token_store: FleetTokenStore,
    session_issuer: AppSessionIssuer,
    clock: FakeClock,
) -> None:
    _, headers = await _connected_user(user_store, token_store, session_issuer, clock)
    vehicle_id = await _first_vehicle_id(client, headers)

    response = await client.get(f"{BASE}/vehicles/{vehicle_id}/data", headers=headers)

    assert response.status_code == 200
    assert response.json()["metrics"]["battery_level"] == 74


@pytest.mark.anyio
async def test_expiring_token_is_refreshed_before_proxying(
    client: httpx.AsyncClient,
    user_store: UserStore,
    token_store: FleetTokenStore,
    session_issuer: AppSessionIssuer,
    oauth_client: FakeOAuthClient,
    clock: FakeClock,
) -> None:
    user_id, headers = await _connected_user(user_store, token_store, session_issuer, clock)
    vehicle_id = await _first_vehicle_id(client, headers)
    clock.advance(minutes=58)

    response = await client.get(f"{BASE}/vehicles/{vehicle_id}", headers=headers)

    assert response.status_code == 200
    assert oauth_client.refresh_calls == ["refresh-1"]
    assert (await token_store.get_token(user_id)).access_token == "access-refreshed-1"


@pytest.mark.anyio
@pytest.mark.parametrize("adapter", [AsleepVehicleClient()])
async def test_wake_vehicle_records_new_state(
    client: httpx.AsyncClient,
    user_store: UserStore,
    token_store: FleetTokenStore,
    session_issuer: AppSessionIssuer,
    vehicle_store: VehicleStore,
    clock: FakeClock,
) -> None:
    user_id, headers = await _connected_user(user_store, token_store, session_issuer, clock)
    vehicle_id = await _first_vehicle_id(client, headers)
    assert (await vehicle_store.get_owned_vehicle(user_id, vehicle_id)).state == "asleep"

    response = await client.post(f"{BASE}/vehicles/{vehicle_id}/wake", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "online"
    assert body["vehicle"]["state"] == "online"
    assert body["message"] == "Vehicle wake command sent"
    assert (await vehicle_store.get_owned_vehicle(user_id, vehicle_id)).state == "online"


@pytest.mark.anyio
async def test_metrics_are_reported_in_metric_units(
    client: httpx.AsyncClient,
    user_store: UserStore,
    token_store: FleetTokenStore,
    session_issuer: AppSessionIssuer,
    clock: FakeClock,
) -> None:
    _, headers = await _connected_user(user_store, token_store, session_issuer, clock)
    vehicle_id = await _first_vehicle_id(client, headers)

    response = await client.get(
        f"{BASE}/vehicles/{vehicle_id}/metrics", params={"period": "all-time"}, headers=headers
    )

    assert response.status_code == 200
    metrics = response.json()["metrics"]
    assert metrics["period"] == "all-time"
    assert metrics["current"]["speed"] == 0
    assert metrics["current"]["speed_unit"] == "kmh"
    assert metrics["live_consumption"]["efficiency"] == pytest.approx(88.8)
    assert metrics["average_efficiency"] == {"efficiency": 81, "distance": 20047}
    assert metrics["energy_usage"] == {"total": 15.5, "avg_consumption": 180}


@pytest.mark.anyio
async def test_metrics_period_defaults_to_trip_and_is_validated(
    client: httpx.AsyncClient,
    user_store: UserStore,
    token_store: FleetTokenStore,
    session_issuer: AppSessionIssuer,
    clock: FakeClock,
) -> None:
    _, headers = await _connected_user(user_store, token_store, session_issuer, clock)
    vehicle_id = await _first_vehicle_id(client, headers)

    default = await client.get(f"{BASE}/vehicles/{vehicle_id}/metrics", headers=headers)
    invalid = await client.get(
        f"{BASE}/vehicles/{vehicle_id}/metrics", params={"period": "decade"}, headers=headers
    )

    assert default.json()["metrics"]["period"] == "trip"
    assert invalid.status_code == 422


@pytest.mark.anyio
@pytest.mark.parametrize(
    "method, suffix",
    [("GET", ""), ("GET", "/data"), ("POST", "/wake"), ("GET", "/metrics")],
)
async def test_vehicle_of_another_user_is_not_found(
    client: httpx.AsyncClient,
    user_store: UserStore,
    token_store: FleetTokenStore,
    session_issuer: AppSessionIssuer,
    clock: FakeClock,
    method: str,
    suffix: str,
) -> None:
    _, owner_headers = await _connected_user(user_store, token_store, session_issuer, clock)
    vehicle_id = await _first_vehicle_id(client, owner_headers)
    _, other_headers = await _connected_user(
        user_store, token_store, session_issuer, clock, email="other@example.com"
    )

    foreign = await client.request(
        method, f"{BASE}/vehicles/{vehicle_id}{suffix}", headers=other_headers
    )
    unknown = await client.request(
        method, f"{BASE}/vehicles/{vehicle_id + 100}{suffix}", headers=owner_headers
    )

    assert foreign.status_code == 404
    assert foreign.json()["detail"] == "Vehicle not found."
    assert unknown.status_code == 404


@pytest.mark.anyio
async def test_unconnected_user_gets_401(
    client: httpx.AsyncClient, user_store: UserStore, session_issuer: AppSessionIssuer
) -> None:
    user = await user_store.create_user(email="new@example.com")

    response = await client.get(
        f"{BASE}/vehicles", headers={"Authorization": f"Bearer {session_issuer.issue(user)}"}
    )

    assert response.status_code == 401


@pytest.mark.anyio
async def test_tokens_sealed_with_a_rotated_secret_need_a_new_login(
    client: httpx.AsyncClient,
    user_store: UserStore,
    sqlite_store: SQLiteStore,
    session_issuer: AppSessionIssuer,
    clock: FakeClock,
) -> None:
    old_store = FleetTokenStore(sqlite_store, TokenCipherService(secret="retired-secret"))
    _, headers = await _connected_user(user_store, old_store, session_issuer, clock)

    response = await client.get(f"{BASE}/vehicles", headers=headers)

    assert response.status_code == 401
    assert response.json()["detail"] == "Fleet account not connected; please log in."


@pytest.mark.anyio
@pytest.mark.parametrize("adapter", [RejectingVehicleClient()])
async def test_rejected_fleet_token_maps_to_401(
    client: httpx.AsyncClient,
    user_store: UserStore,
    token_store: FleetTokenStore,
    session_issuer: AppSessionIssuer,
    clock: FakeClock,
) -> None:
    _, headers = await _connected_user(user_store, token_store, session_issuer, clock)

    response = await client.get(f"{BASE}/vehicles", headers=headers)

    assert response.status_code == 401


@pytest.mark.anyio
@pytest.mark.parametrize("adapter", [_failing_fleet_api()])
async def test_provider_error_details_are_not_returned(
    client: httpx.AsyncClient,
    user_store: UserStore,
    token_store: FleetTokenStore,
    session_issuer: AppSessionIssuer,
    clock: FakeClock,
) -> None:
    _, headers = await _connected_user(user_store, token_store, session_issuer, clock)

    response = await client.get(f"{BASE}/vehicles", headers=headers)

    assert response.status_code == 502
    assert response.json()["detail"] == "Fetching vehicles failed."
    assert PROVIDER_DETAIL not in response.text
