"""
Short-lived storage mapping OAuth ``state`` values to PKCE verifiers.

The in-memory store suits a single process. The SQLite store lets several
worker processes on one host share pending sessions. A multi-host deployment
needs a shared cache with native TTL behind the same ``OAuthSessionStore``
protocol.
"""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol

from fleet_broker.models.oauth import OAuthSession

Clock = Callable[[], datetime]

DEFAULT_SESSION_TTL_SECONDS = 600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class OAuthSessionStore(Protocol):
    async def put(self, state: str, code_verifier: str) -> OAuthSession: ...

    async def get(self, state: str) -> Optional[str]: ...

    async def delete(self, state: str) -> None: ...

    async def consume(self, state: str) -> Optional[str]: ...


class InMemoryOAuthSessionStore:
    """Process-local session map with lazy TTL expiry."""

    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        clock: Clock = _utcnow,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._sessions: Dict[str, OAuthSession] = {}
        self._lock = asyncio.Lock()

    def _is_live(self, session: OAuthSession) -> bool:
        return self._clock() - session.created_at < self._ttl

    def _prune(self) -> None:
        expired = [
            state for state, session in self._sessions.items() if not self._is_live(session)
        ]
        for state in expired:
            del self._sessions[state]

    async def put(self, state: str, code_verifier: str) -> OAuthSession:
        session = OAuthSession(
            state=state, code_verifier=code_verifier, created_at=self._clock()
        )
        async with self._lock:
            self._prune()
            self._sessions[state] = session
        return session

    async def get(self, state: str) -> Optional[str]:
        async with self._lock:
            session = self._sessions.get(state)
            if session is None:
                return None
            if not self._is_live(session):
                del self._sessions[state]
                return None
            return session.code_verifier

    async def delete(self, state: str) -> None:
        async with self._lock:
            self._sessions.pop(state, None)

    async def consume(self, state: str) -> Optional[str]:
        """Return the verifier and remove the session in one step."""
        async with self._lock:
            session = self._sessions.pop(state, None)
        if session is None or not self._is_live(session):
            return None
        return session.code_verifier

    def __len__(self) -> int:
        return len(self._sessions)


class SQLiteOAuthSessionStore:
    """SQLite-backed session store shared by processes on one host."""

    def __init__(
        self,
        db_path: str,
        *,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        clock: Clock = _utcnow,
    ) -> None:
        self._db_path = Path(db_path)
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_sessions (
                    state TEXT PRIMARY KEY,
                    code_verifier TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )

    def _threshold(self) -> str:
        return _iso(self._clock() - self._ttl)

    def _put_sync(self, session: OAuthSession) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM oauth_sessions WHERE created_at <= ?",
                (self._threshold(),),
            )
            conn.execute(
                """
                INSERT INTO oauth_sessions (state, code_verifier, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(state) DO UPDATE SET
                    code_verifier = excluded.code_verifier,
                    created_at = excluded.created_at
                """,
                (session.state, session.code_verifier, _iso(session.created_at)),
            )

    def _get_sync(self, state: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT code_verifier FROM oauth_sessions WHERE state = ? AND created_at > ?",
                (state, self._threshold()),
            ).fetchone()
        return row["code_verifier"] if row else None

    def _delete_sync(self, state: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM oauth_sessions WHERE state = ?", (state,))

    def _consume_sync(self, state: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT code_verifier, created_at FROM oauth_sessions WHERE state = ?",
                (state,),
            ).fetchone()
            if not row:
                return None
            deleted = conn.execute(
                "DELETE FROM oauth_sessions WHERE state = ?", (state,)
            ).rowcount
        # Only the caller whose DELETE removed the row owns the verifier.
        if deleted != 1 or row["created_at"] <= self._threshold():
            return None
        return row["code_verifier"]

    async def put(self, state: str, code_verifier: str) -> OAuthSession:
        session = OAuthSession(
            state=state, code_verifier=code_verifier, created_at=self._clock()
        )
        await asyncio.to_thread(self._put_sync, session)
        return session

    async def get(self, state: str) -> Optional[str]:
        return await asyncio.to_thread(self._get_sync, state)

    async def delete(self, state: str) -> None:
        await asyncio.to_thread(self._delete_sync, state)

    async def consume(self, state: str) -> Optional[str]:
        return await asyncio.to_thread(self._consume_sync, state)


__all__ = [
    "DEFAULT_SESSION_TTL_SECONDS",
    "InMemoryOAuthSessionStore",
    "OAuthSessionStore",
    "SQLiteOAuthSessionStore",
]
