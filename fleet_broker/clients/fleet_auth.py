"""
Fleet provider OAuth utilities.

These helpers build authorization URLs and call the provider's token and
revoke endpoints. Failures surface as ``OAuthProviderError`` and are mapped to
the lifecycle errors below before they reach API callers.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from fastapi import status

from fleet_broker.core.config import FleetSettings

logger = logging.getLogger(__name__)


class FleetAuthError(Exception):
    """Base class for OAuth lifecycle failures."""

    retryable: bool = False

    def __init__(self, message: str = "", *, retryable: Optional[bool] = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class OAuthProviderError(FleetAuthError):
    """Raised when a provider endpoint fails or cannot be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.status_code = status_code
        self.body = body


class InvalidOAuthRequestError(FleetAuthError):
    """Raised for malformed callbacks or provider-reported OAuth errors."""


class OAuthSessionExpiredError(FleetAuthError):
    """Raised when a callback ``state`` is unknown, already used or expired."""


class OAuthTokenExchangeError(FleetAuthError):
    """Raised when the authorization code cannot be exchanged for tokens."""


class OAuthTokenRefreshError(FleetAuthError):
    """Raised when a refresh fails; the user must authenticate again."""


class OAuthTokenNotFoundError(FleetAuthError):
    """Raised when no persisted OAuth token is available for a user."""


class PartnerRegistrationError(FleetAuthError):
    """Raised when the deployment's domain cannot be registered."""


class FleetOAuthClient:
    """Build authorization URLs and call the provider's OAuth endpoints."""

    AUTHORIZE_PATH = "/oauth2/v3/authorize"
    TOKEN_PATH = "/oauth2/v3/token"
    REVOKE_PATH = "/oauth2/v3/revoke"

    def __init__(
        self,
        fleet_settings: FleetSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._fleet = fleet_settings
        self._transport = transport

    @property
    def token_url(self) -> str:
        return f"{self._fleet.token_base_url}{self.TOKEN_PATH}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._fleet.http_timeout_seconds, transport=self._transport
        )

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        """Construct the provider consent URL for a PKCE (S256) flow."""
        params = {
            "response_type": "code",
            "client_id": self._fleet.client_id,
            "redirect_uri": str(self._fleet.redirect_uri),
            "scope": " ".join(self._fleet.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self._fleet.auth_base_url}{self.AUTHORIZE_PATH}?{urlencode(params)}"

    async def _post_token_form(self, payload: Dict[str, str], *, action: str) -> Dict[str, Any]:
        form = {
            "client_id": self._fleet.client_id,
            "client_secret": self._fleet.client_secret,
            "audience": self._fleet.audience,
            **payload,
        }
        try:
            async with self._client() as client:
                response = await client.post(self.token_url, data=form)
        except httpx.TimeoutException as exc:
            raise OAuthProviderError(f"{action} timed out.", retryable=True) from exc
        except httpx.TransportError as exc:
            raise OAuthProviderError(f"{action} could not reach provider.", retryable=True) from exc

        if response.status_code != status.HTTP_200_OK:
            logger.warning(
                "%s rejected by provider (status=%s): %s",
                action,
                response.status_code,
                response.text,
            )
            raise OAuthProviderError(
                f"{action} rejected by provider.",
                status_code=response.status_code,
                body=response.text,
                retryable=response.status_code >= 500,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise OAuthProviderError(f"{action} returned a non-JSON body.") from exc

    async def exchange_authorization_code(self, code: str, code_verifier: str) -> Dict[str, Any]:
        """Exchange an authorization code and its PKCE verifier for tokens."""
        return await self._post_token_form(
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier,
                "redirect_uri": str(self._fleet.redirect_uri),
            },
            action="Authorization code exchange",
        )

    async def refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        """Exchange a stored refresh token for a fresh token set."""
        return await self._post_token_form(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            action="Token refresh",
        )

    async def get_partner_token(self) -> str:
        """Obtain a service-level token through the client credentials grant."""
        payload = await self._post_token_form(
            {
                "grant_type": "client_credentials",
                "scope": " ".join(self._fleet.partner_scopes),
            },
            action="Partner token request",
        )
        access_token = payload.get("access_token")
        if not access_token:
            raise OAuthProviderError("Partner token response is missing access_token.")
        return access_token

    async def revoke_token(self, token: str) -> None:
        """Ask the provider to revoke ``token``."""
        url = f"{self._fleet.auth_base_url}{self.REVOKE_PATH}"
        try:
            async with self._client() as client:
                response = await client.post(
                    url, json={"client_id": self._fleet.client_id, "token": token}
                )
        except httpx.TransportError as exc:
            raise OAuthProviderError("Token revocation could not reach provider.", retryable=True) from exc

        if response.status_code >= status.HTTP_400_BAD_REQUEST:
            raise OAuthProviderError(
                "Token revocation rejected by provider.",
                status_code=response.status_code,
                body=response.text,
            )


__all__ = [
    "FleetAuthError",
    "FleetOAuthClient",
    "InvalidOAuthRequestError",
    "OAuthProviderError",
    "OAuthSessionExpiredError",
    "OAuthTokenExchangeError",
    "OAuthTokenNotFoundError",
    "OAuthTokenRefreshError",
    "PartnerRegistrationError",
]
