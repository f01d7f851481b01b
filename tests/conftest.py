"""Pytest configuration shared across the suite."""

from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except ImportError:  # pragma: no cover - tests is not a package
    import _bootstrap  # type: ignore # noqa: F401

from pathlib import Path

import pytest

from fleet_broker.clients.sqlite_store import SQLiteStore
from fleet_broker.core.config import OAuthSettings, SecuritySettings
from fleet_broker.services.app_sessions import AppSessionIssuer
from fleet_broker.services.fleet_tokens import FleetTokenService
from fleet_broker.services.oauth_sessions import InMemoryOAuthSessionStore
from fleet_broker.services.token_cipher import TokenCipherService
from fleet_broker.services.token_store import FleetTokenStore
from fleet_broker.services.user_store import UserStore
from fleet_broker.services.vehicle_store import VehicleStore

from _fakes import FakeClock, FakeOAuthClient


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sqlite_store(tmp_path: Path) -> SQLiteStore:
    return SQLiteStore(str(tmp_path / "broker.db"))


@pytest.fixture
def cipher() -> TokenCipherService:
    return TokenCipherService(secret="secret-key")


@pytest.fixture
def token_store(sqlite_store: SQLiteStore, cipher: TokenCipherService) -> FleetTokenStore:
    return FleetTokenStore(sqlite_store, cipher)


@pytest.fixture
def user_store(sqlite_store: SQLiteStore, clock: FakeClock) -> UserStore:
    return UserStore(sqlite_store, clock=clock)


@pytest.fixture
def vehicle_store(sqlite_store: SQLiteStore, clock: FakeClock) -> VehicleStore:
    return VehicleStore(sqlite_store, clock=clock)


@pytest.fixture
def oauth_client() -> FakeOAuthClient:
    return FakeOAuthClient()


@pytest.fixture
def session_issuer() -> AppSessionIssuer:
    return AppSessionIssuer(SecuritySettings(JWT_SECRET="jwt-test-secret-0123456789abcdef0123"))


@pytest.fixture
def session_store(clock: FakeClock) -> InMemoryOAuthSessionStore:
    return InMemoryOAuthSessionStore(ttl_seconds=600, clock=clock)


@pytest.fixture
def token_service(
    session_store: InMemoryOAuthSessionStore,
    token_store: FleetTokenStore,
    user_store: UserStore,
    oauth_client: FakeOAuthClient,
    session_issuer: AppSessionIssuer,
    clock: FakeClock,
) -> FleetTokenService:
    return FleetTokenService(
        session_store=session_store,
        token_store=token_store,
        user_store=user_store,
        oauth_client=oauth_client,  # type: ignore[arg-type]
        session_issuer=session_issuer,
        oauth_settings=OAuthSettings(),
        clock=clock,
    )
