"""
Domain models for the OAuth flow and token persistence.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthSession(BaseModel):
    """Pending authorization attempt, keyed by its ``state`` value."""

    state: str
    code_verifier: str
    created_at: datetime = Field(default_factory=_utcnow)


class TokenGrant(BaseModel):
    """Normalized token endpoint response."""

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: int
    expires_at: datetime
    scopes: tuple[str, ...] = ()
    id_token: Optional[str] = None


class FleetTokenRecord(BaseModel):
    """Represents the single token row stored for a user."""

    user_id: int
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_at: datetime
    scopes: tuple[str, ...] = ()
    updated_at: datetime = Field(default_factory=_utcnow)


class AuthStatus(BaseModel):
    authenticated: bool
    needs_refresh: bool
    expires_at: Optional[datetime] = None


class RegistrationResult(BaseModel):
    """Outcome of registering this deployment's domain with the provider."""

    domain: str
    registered: bool = True
    already_registered: bool = False
    payload: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "AuthStatus",
    "FleetTokenRecord",
    "OAuthSession",
    "RegistrationResult",
    "TokenGrant",
]
