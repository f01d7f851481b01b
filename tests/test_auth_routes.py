"""End-to-end tests for the OAuth broker routes."""

from __future__ import annotations

from typing import AsyncIterator
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from fleet_broker.clients.fleet_api import FleetApiError
from fleet_broker.clients.fleet_auth import OAuthProviderError
from fleet_broker.core.config import AppSettings, get_settings
from fleet_broker.dependencies import (
    get_app_session_issuer,
    get_app_settings,
    get_fleet_token_service,
    get_partner_registration_service,
    get_user_store,
)
from fleet_broker.main import create_app
from fleet_broker.services.app_sessions import AppSessionIssuer
from fleet_broker.services.fleet_tokens import FleetTokenService
from fleet_broker.services.partner_registration import PartnerRegistrationService
from fleet_broker.services.user_store import UserStore

from _fakes import FakeClock, FakeOAuthClient

BASE = "/api/v1"


class ConflictPartnerApi:
    async def register_partner_account(self, partner_token: str, domain: str) -> dict:
        raise FleetApiError("Partner registration failed.", status_code=409)


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(APP_REDIRECT_URI="fleetapp://auth/complete")  # type: ignore[call-arg]


@pytest.fixture
def app(
    token_service: FleetTokenService,
    session_issuer: AppSessionIssuer,
    user_store: UserStore,
    oauth_client: FakeOAuthClient,
    app_settings: AppSettings,
):
    application = create_app()
    registrar = PartnerRegistrationService(
        oauth_client,  # type: ignore[arg-type]
        ConflictPartnerApi(),  # type: ignore[arg-type]
        default_domain="broker.example.com",
    )
    application.dependency_overrides[get_fleet_token_service] = lambda: token_service
    application.dependency_overrides[get_app_session_issuer] = lambda: session_issuer
    application.dependency_overrides[get_user_store] = lambda: user_store
    application.dependency_overrides[get_app_settings] = lambda: app_settings
    application.dependency_overrides[get_partner_registration_service] = lambda: registrar
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as http_client:
        yield http_client


async def _complete_login(client: httpx.AsyncClient) -> dict:
    login = await client.get(f"{BASE}/auth/login")
    assert login.status_code == 200
    callback = await client.get(
        f"{BASE}/auth/callback", params={"code": "code-1", "state": login.json()["state"]}
    )
    assert callback.status_code == 200
    return callback.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_settings_dependency_returns_process_settings() -> None:
    assert get_app_settings() is get_settings()


@pytest.mark.anyio
async def test_health(client: httpx.AsyncClient) -> None:
    response = await client.get(f"{BASE}/health")

    assert response.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_login_returns_authorization_url(client: httpx.AsyncClient) -> None:
    response = await client.get(f"{BASE}/auth/login")

    assert response.status_code == 200
    payload = response.json()
    params = parse_qs(urlparse(payload["auth_url"]).query)
    assert params["state"] == [payload["state"]]
    assert params["code_challenge_method"] == ["S256"]


@pytest.mark.anyio
async def test_login_redirects_browsers(client: httpx.AsyncClient) -> None:
    response = await client.get(f"{BASE}/auth/login", headers={"Accept": "text/html"})

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://auth.example.com/oauth2/v3/authorize")


@pytest.mark.anyio
async def test_callback_returns_app_session(
    client: httpx.AsyncClient, session_issuer: AppSessionIssuer
) -> None:
    payload = await _complete_login(client)

    assert payload["success"] is True
    assert session_issuer.user_id_from_token(payload["token"]) == payload["user"]["id"]


@pytest.mark.anyio
async def test_callback_redirects_to_app_deep_link(client: httpx.AsyncClient) -> None:
    login = await client.get(f"{BASE}/auth/login")

    response = await client.get(
        f"{BASE}/auth/callback",
        params={"code": "code-1", "state": login.json()["state"], "redirect": "true"},
    )

    assert response.status_code == 307
    location = urlparse(response.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == "fleetapp://auth/complete"
    assert "token" in parse_qs(location.query)


@pytest.mark.anyio
async def test_callback_with_bad_state_is_rejected(client: httpx.AsyncClient) -> None:
    await client.get(f"{BASE}/auth/login")

    response = await client.get(
        f"{BASE}/auth/callback", params={"code": "code-1", "state": "forged"}
    )

    assert response.status_code == 400


@pytest.mark.anyio
async def test_callback_replay_is_rejected(client: httpx.AsyncClient) -> None:
    login = await client.get(f"{BASE}/auth/login")
    params = {"code": "code-1", "state": login.json()["state"]}

    first = await client.get(f"{BASE}/auth/callback", params=params)
    second = await client.get(f"{BASE}/auth/callback", params=params)

    assert first.status_code == 200
    assert second.status_code == 400


@pytest.mark.anyio
async def test_callback_with_provider_error_is_rejected(client: httpx.AsyncClient) -> None:
    response = await client.get(f"{BASE}/auth/callback", params={"error": "access_denied"})

    assert response.status_code == 400


@pytest.mark.anyio
async def test_failed_exchange_maps_to_bad_gateway(
    client: httpx.AsyncClient, oauth_client: FakeOAuthClient
) -> None:
    oauth_client.exchange_error = OAuthProviderError("rejected", status_code=400)
    login = await client.get(f"{BASE}/auth/login")

    response = await client.get(
        f"{BASE}/auth/callback", params={"code": "code-1", "state": login.json()["state"]}
    )

    assert response.status_code == 502
    assert response.json()["detail"] == "Authentication failed."


@pytest.mark.anyio
async def test_status_requires_app_session(client: httpx.AsyncClient) -> None:
    missing = await client.get(f"{BASE}/auth/status")
    invalid = await client.get(f"{BASE}/auth/status", headers=_bearer("garbage"))

    assert missing.status_code == 401
    assert invalid.status_code == 401


@pytest.mark.anyio
async def test_status_refresh_and_logout(
    client: httpx.AsyncClient, oauth_client: FakeOAuthClient, clock: FakeClock
) -> None:
    session = await _complete_login(client)
    headers = _bearer(session["token"])

    status = await client.get(f"{BASE}/auth/status", headers=headers)
    assert status.status_code == 200
    assert status.json()["is_authenticated"] is True
    assert status.json()["needs_refresh"] is False

    refreshed = await client.post(f"{BASE}/auth/refresh", headers=headers)
    assert refreshed.status_code == 200
    assert oauth_client.refresh_calls == ["refresh-1"]

    logout = await client.post(f"{BASE}/auth/logout", headers=headers)
    assert logout.status_code == 200
    assert oauth_client.revoke_calls == ["access-refreshed-1"]

    status = await client.get(f"{BASE}/auth/status", headers=headers)
    assert status.json()["is_authenticated"] is False


@pytest.mark.anyio
async def test_refresh_without_tokens_requires_login(
    client: httpx.AsyncClient, session_issuer: AppSessionIssuer, user_store: UserStore
) -> None:
    user = await user_store.create_user(email="nobody@example.com")

    response = await client.post(
        f"{BASE}/auth/refresh", headers=_bearer(session_issuer.issue(user))
    )

    assert response.status_code == 401


@pytest.mark.anyio
async def test_partner_registration_treats_conflict_as_success(
    client: httpx.AsyncClient,
) -> None:
    session = await _complete_login(client)

    before = await client.get(f"{BASE}/partner/status")
    response = await client.post(
        f"{BASE}/partner/register", headers=_bearer(session["token"])
    )
    after = await client.get(f"{BASE}/partner/status")

    assert before.json() == {"registered": False, "domain": "broker.example.com"}
    assert response.status_code == 200
    assert response.json()["already_registered"] is True
    assert after.json()["registered"] is True
