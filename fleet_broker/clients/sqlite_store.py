"""SQLite storage engine for user accounts, fleet token rows and vehicles."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional


class SQLiteStore:
    """Synchronous record store; async callers wrap calls in worker threads."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT,
                    external_user_id TEXT UNIQUE,
                    last_login_at TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS fleet_tokens (
                    user_id INTEGER PRIMARY KEY
                        REFERENCES users(id) ON DELETE CASCADE,
                    access_token_encrypted TEXT NOT NULL,
                    refresh_token_encrypted TEXT,
                    token_type TEXT NOT NULL DEFAULT 'Bearer',
                    expires_at TEXT NOT NULL,
                    scopes TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS vehicles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL
                        REFERENCES users(id) ON DELETE CASCADE,
                    fleet_vehicle_id TEXT NOT NULL,
                    vin TEXT NOT NULL UNIQUE,
                    display_name TEXT,
                    model TEXT,
                    year INTEGER,
                    color TEXT,
                    state TEXT,
                    last_seen_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_vehicles_user_id ON vehicles(user_id)"
            )

    @staticmethod
    def _row_to_dict(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
        return dict(row) if row else None

    # users

    def create_user(
        self,
        *,
        email: str,
        name: Optional[str],
        external_user_id: Optional[str],
        created_at: str,
    ) -> Dict[str, Any]:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO users (email, name, external_user_id, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (email, name, external_user_id, created_at),
            )
            row = conn.execute(
                "SELECT * FROM users WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return dict(row)

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_dict(row)

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return self._row_to_dict(row)

    def find_user_by_external_id(self, external_user_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE external_user_id = ?", (external_user_id,)
            ).fetchone()
        return self._row_to_dict(row)

    def update_user(self, user_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        allowed = {"email", "name", "external_user_id", "last_login_at"}
        updates = {key: value for key, value in fields.items() if key in allowed}
        with self._connect() as conn:
            if updates:
                assignments = ", ".join(f"{key} = ?" for key in updates)
                conn.execute(
                    f"UPDATE users SET {assignments} WHERE id = ?",
                    (*updates.values(), user_id),
                )
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_dict(row)

    # tokens

    def upsert_token(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert or replace the token row for ``item['user_id']``.

        A ``None`` refresh token or an empty scope list keeps the stored value.
        """
        user_id = item.get("user_id")
        if user_id is None:
            raise ValueError("Token item must include 'user_id'")

        scopes_json = json.dumps(list(item.get("scopes") or []))
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO fleet_tokens (
                    user_id,
                    access_token_encrypted,
                    refresh_token_encrypted,
                    token_type,
                    expires_at,
                    scopes,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    access_token_encrypted = excluded.access_token_encrypted,
                    refresh_token_encrypted = COALESCE(
                        excluded.refresh_token_encrypted,
                        fleet_tokens.refresh_token_encrypted
                    ),
                    token_type = excluded.token_type,
                    expires_at = excluded.expires_at,
                    scopes = CASE
                        WHEN excluded.scopes = '[]' THEN fleet_tokens.scopes
                        ELSE excluded.scopes
                    END,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    item["access_token_encrypted"],
                    item.get("refresh_token_encrypted"),
                    item.get("token_type") or "Bearer",
                    item["expires_at"],
                    scopes_json,
                    item["updated_at"],
                    item["updated_at"],
                ),
            )
            row = conn.execute(
                "SELECT * FROM fleet_tokens WHERE user_id = ?", (user_id,)
            ).fetchone()
        return self._decode_token_row(row)

    def get_token(self, user_id: int) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM fleet_tokens WHERE user_id = ?", (user_id,)
            ).fetchone()
        return self._decode_token_row(row) if row else None

    def delete_token(self, user_id: int) -> bool:
        with self._connect() as conn:
            deleted = conn.execute(
                "DELETE FROM fleet_tokens WHERE user_id = ?", (user_id,)
            ).rowcount
        return deleted > 0

    # vehicles

    def upsert_vehicle(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert or update a vehicle keyed by VIN.

        The latest sync owns the row. Descriptive fields the provider
        omitted keep their stored values.
        """
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO vehicles (
                    user_id,
                    fleet_vehicle_id,
                    vin,
                    display_name,
                    model,
                    year,
                    color,
                    state,
                    last_seen_at,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(vin) DO UPDATE SET
                    user_id = excluded.user_id,
                    fleet_vehicle_id = excluded.fleet_vehicle_id,
                    display_name = excluded.display_name,
                    model = COALESCE(excluded.model, vehicles.model),
                    year = COALESCE(excluded.year, vehicles.year),
                    color = COALESCE(excluded.color, vehicles.color),
                    state = excluded.state,
                    last_seen_at = excluded.last_seen_at,
                    updated_at = excluded.updated_at
                """,
                (
                    item["user_id"],
                    item["fleet_vehicle_id"],
                    item["vin"],
                    item.get("display_name"),
                    item.get("model"),
                    item.get("year"),
                    item.get("color"),
                    item.get("state"),
                    item["seen_at"],
                    item["seen_at"],
                    item["seen_at"],
                ),
            )
            row = conn.execute(
                "SELECT * FROM vehicles WHERE vin = ?", (item["vin"],)
            ).fetchone()
        return dict(row)

    def get_vehicle(self, vehicle_id: int) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM vehicles WHERE id = ?", (vehicle_id,)
            ).fetchone()
        return self._row_to_dict(row)

    def list_vehicles(self, user_id: int) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM vehicles WHERE user_id = ? ORDER BY id", (user_id,)
            ).fetchall()
        return [dict(row) for row in rows]

    def update_vehicle_state(
        self, vehicle_id: int, state: str, seen_at: str
    ) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE vehicles
                SET state = ?, last_seen_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (state, seen_at, seen_at, vehicle_id),
            )
            row = conn.execute(
                "SELECT * FROM vehicles WHERE id = ?", (vehicle_id,)
            ).fetchone()
        return self._row_to_dict(row)

    @staticmethod
    def _decode_token_row(row: sqlite3.Row) -> Dict[str, Any]:
        data = dict(row)
        data["scopes"] = json.loads(data.get("scopes") or "[]")
        return data


__all__ = ["SQLiteStore"]
