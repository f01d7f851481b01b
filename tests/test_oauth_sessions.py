import asyncio
from pathlib import Path

import pytest

from fleet_broker.services.oauth_sessions import (
    InMemoryOAuthSessionStore,
    SQLiteOAuthSessionStore,
)

from _fakes import FakeClock


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path, clock: FakeClock):
    if request.param == "memory":
        return InMemoryOAuthSessionStore(ttl_seconds=600, clock=clock)
    return SQLiteOAuthSessionStore(str(tmp_path / "sessions.db"), ttl_seconds=600, clock=clock)


@pytest.mark.asyncio
async def test_consume_returns_verifier_once(store) -> None:
    await store.put("state-1", "verifier-1")

    assert await store.consume("state-1") == "verifier-1"
    assert await store.consume("state-1") is None
    assert await store.get("state-1") is None


@pytest.mark.asyncio
async def test_get_does_not_remove_session(store) -> None:
    await store.put("state-1", "verifier-1")

    assert await store.get("state-1") == "verifier-1"
    assert await store.consume("state-1") == "verifier-1"


@pytest.mark.asyncio
async def test_unknown_state_is_absent(store) -> None:
    await store.put("state-1", "verifier-1")

    assert await store.consume("other") is None
    assert await store.get("state-1") == "verifier-1"


@pytest.mark.asyncio
async def test_sessions_expire_after_ttl(store, clock: FakeClock) -> None:
    await store.put("fresh", "v-fresh")
    await store.put("stale", "v-stale")

    clock.advance(seconds=599)
    assert await store.get("fresh") == "v-fresh"

    clock.advance(seconds=1)
    assert await store.get("fresh") is None
    assert await store.consume("stale") is None


@pytest.mark.asyncio
async def test_delete_removes_session(store) -> None:
    await store.put("state-1", "verifier-1")
    await store.delete("state-1")

    assert await store.consume("state-1") is None


@pytest.mark.asyncio
async def test_put_prunes_expired_sessions(clock: FakeClock) -> None:
    store = InMemoryOAuthSessionStore(ttl_seconds=600, clock=clock)
    await store.put("old", "v-old")

    clock.advance(minutes=11)
    await store.put("new", "v-new")

    assert len(store) == 1


@pytest.mark.asyncio
async def test_concurrent_consume_has_single_winner(store) -> None:
    await store.put("state-1", "verifier-1")

    results = await asyncio.gather(*(store.consume("state-1") for _ in range(5)))

    assert results.count("verifier-1") == 1
    assert results.count(None) == 4


@pytest.mark.asyncio
async def test_sqlite_sessions_are_shared_between_instances(
    tmp_path: Path, clock: FakeClock
) -> None:
    db_path = str(tmp_path / "shared.db")
    writer = SQLiteOAuthSessionStore(db_path, clock=clock)
    reader = SQLiteOAuthSessionStore(db_path, clock=clock)

    await writer.put("state-1", "verifier-1")

    assert await reader.consume("state-1") == "verifier-1"
    assert await writer.consume("state-1") is None
