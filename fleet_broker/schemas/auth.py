"""Schemas related to OAuth flows and partner registration."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class UserSummary(BaseModel):
    id: int
    email: str
    name: Optional[str] = None


class LoginResponse(BaseModel):
    """Authorization URL returned when starting the OAuth flow."""

    success: bool = True
    auth_url: str = Field(..., description="Provider consent URL to open in a browser.")
    state: str = Field(..., description="Opaque state value correlating the callback.")
    message: str = "Redirect user to auth_url to complete authentication"


class CallbackResponse(BaseModel):
    """Result of a completed OAuth callback."""

    success: bool = True
    token: str = Field(..., description="App session token for subsequent API calls.")
    user: UserSummary


class RefreshResponse(BaseModel):
    success: bool = True
    message: str = "Token refreshed successfully"
    expires_at: datetime


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out successfully"


class AuthStatusResponse(BaseModel):
    success: bool = True
    user: UserSummary
    is_authenticated: bool
    needs_refresh: bool
    expires_at: Optional[datetime] = None


class PartnerRegistrationResponse(BaseModel):
    success: bool = True
    message: str
    domain: str
    already_registered: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)


class PartnerStatusResponse(BaseModel):
    registered: bool
    domain: Optional[str] = None


__all__ = [
    "AuthStatusResponse",
    "CallbackResponse",
    "LoginResponse",
    "LogoutResponse",
    "PartnerRegistrationResponse",
    "PartnerStatusResponse",
    "RefreshResponse",
    "UserSummary",
]
