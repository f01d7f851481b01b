"""
Per-user token persistence with upsert-on-conflict semantics.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fleet_broker.clients.sqlite_store import SQLiteStore
from fleet_broker.models.oauth import FleetTokenRecord, TokenGrant
from fleet_broker.services.token_cipher import TokenCipherService


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class FleetTokenStore:
    """Stores one encrypted token row per user."""

    def __init__(self, store: SQLiteStore, token_cipher: TokenCipherService) -> None:
        self._store = store
        self._cipher = token_cipher

    def _to_record(self, row: Dict[str, Any]) -> FleetTokenRecord:
        return FleetTokenRecord(
            user_id=row["user_id"],
            access_token=self._cipher.decrypt(row["access_token_encrypted"]),
            refresh_token=self._cipher.decrypt_optional(row.get("refresh_token_encrypted")),
            token_type=row.get("token_type") or "Bearer",
            expires_at=_from_iso(row["expires_at"]),
            scopes=tuple(row.get("scopes") or ()),
            updated_at=_from_iso(row["updated_at"]),
        )

    async def upsert_token(
        self, user_id: int, grant: TokenGrant, *, updated_at: datetime
    ) -> FleetTokenRecord:
        """
        Persist ``grant`` as the user's token row and return the stored record.

        The access token always replaces the stored one. A grant without a
        refresh token keeps the previous refresh token.
        """
        item = {
            "user_id": user_id,
            "access_token_encrypted": self._cipher.encrypt(grant.access_token),
            "refresh_token_encrypted": self._cipher.encrypt_optional(grant.refresh_token),
            "token_type": grant.token_type,
            "expires_at": _to_iso(grant.expires_at),
            "scopes": list(grant.scopes),
            "updated_at": _to_iso(updated_at),
        }
        row = await asyncio.to_thread(self._store.upsert_token, item)
        return self._to_record(row)

    async def get_token(self, user_id: int) -> Optional[FleetTokenRecord]:
        row = await asyncio.to_thread(self._store.get_token, user_id)
        if row is None:
            return None
        return self._to_record(row)

    async def delete_token(self, user_id: int) -> bool:
        return await asyncio.to_thread(self._store.delete_token, user_id)


__all__ = ["FleetTokenStore"]
