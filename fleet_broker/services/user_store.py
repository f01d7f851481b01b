"""Async access to user accounts."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fleet_broker.clients.sqlite_store import SQLiteStore
from fleet_broker.models.user import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_user(row: Optional[Dict[str, Any]]) -> Optional[User]:
    if row is None:
        return None
    return User.model_validate(row)


class UserStore:
    def __init__(
        self, store: SQLiteStore, *, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self._store = store
        self._clock = clock

    def _now_iso(self) -> str:
        return self._clock().astimezone(timezone.utc).isoformat(timespec="microseconds")

    async def get_user(self, user_id: int) -> Optional[User]:
        return _to_user(await asyncio.to_thread(self._store.get_user, user_id))

    async def find_by_email(self, email: str) -> Optional[User]:
        return _to_user(await asyncio.to_thread(self._store.find_user_by_email, email))

    async def find_by_external_id(self, external_user_id: str) -> Optional[User]:
        return _to_user(
            await asyncio.to_thread(self._store.find_user_by_external_id, external_user_id)
        )

    async def create_user(
        self,
        *,
        email: str,
        name: Optional[str] = None,
        external_user_id: Optional[str] = None,
    ) -> User:
        row = await asyncio.to_thread(
            lambda: self._store.create_user(
                email=email,
                name=name,
                external_user_id=external_user_id,
                created_at=self._now_iso(),
            )
        )
        return User.model_validate(row)

    async def link_external_id(self, user_id: int, external_user_id: str) -> Optional[User]:
        return _to_user(
            await asyncio.to_thread(
                self._store.update_user, user_id, {"external_user_id": external_user_id}
            )
        )

    async def update_last_login(self, user_id: int) -> Optional[User]:
        return _to_user(
            await asyncio.to_thread(
                self._store.update_user, user_id, {"last_login_at": self._now_iso()}
            )
        )


__all__ = ["UserStore"]
