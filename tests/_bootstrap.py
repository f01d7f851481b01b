"""Test helper that normalizes sys.path and environment defaults."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


_DEFAULT_ENV_VARS: dict[str, str] = {
    "FLEET_CLIENT_ID": "test-client-id",
    "FLEET_CLIENT_SECRET": "test-client-secret",
    "FLEET_REDIRECT_URI": "https://broker.example.com/api/v1/auth/callback",
    "TOKEN_ENCRYPTION_SECRET": "test-secret",
    "JWT_SECRET": "test-jwt-secret-0123456789abcdef0123",
    "USE_MOCK_VEHICLES": "true",
    "DATABASE_PATH": str(Path(tempfile.gettempdir()) / "fleet-broker-tests.db"),
}

for key, value in _DEFAULT_ENV_VARS.items():
    os.environ.setdefault(key, value)
