"""
Token lifecycle management for the fleet provider.

``FleetTokenService`` owns every transition of a user's token row:
authorize, exchange, store, read with just-in-time refresh, and revoke.
Protected-resource callers obtain tokens only through
``get_valid_access_token``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncContextManager, Callable, Dict, Optional

import jwt

from fleet_broker.clients.fleet_auth import (
    FleetOAuthClient,
    InvalidOAuthRequestError,
    OAuthProviderError,
    OAuthSessionExpiredError,
    OAuthTokenExchangeError,
    OAuthTokenNotFoundError,
    OAuthTokenRefreshError,
)
from fleet_broker.core.config import OAuthSettings
from fleet_broker.models.oauth import AuthStatus, FleetTokenRecord, TokenGrant
from fleet_broker.models.user import User
from fleet_broker.services.app_sessions import AppSessionIssuer
from fleet_broker.services.oauth_sessions import OAuthSessionStore
from fleet_broker.services.pkce import generate_pkce, generate_state
from fleet_broker.services.token_codec import is_token_expired, parse_token_response
from fleet_broker.services.token_store import FleetTokenStore
from fleet_broker.services.user_store import UserStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class LoginRequest:
    authorization_url: str
    state: str


@dataclass(frozen=True, slots=True)
class CallbackResult:
    user: User
    app_session_token: str


class FleetTokenService:
    """Manages OAuth sessions and persisted fleet tokens for each user."""

    PLACEHOLDER_EMAIL_DOMAIN = "users.fleet-broker.local"

    def __init__(
        self,
        *,
        session_store: OAuthSessionStore,
        token_store: FleetTokenStore,
        user_store: UserStore,
        oauth_client: FleetOAuthClient,
        session_issuer: AppSessionIssuer,
        oauth_settings: OAuthSettings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sessions = session_store
        self._tokens = token_store
        self._users = user_store
        self._oauth = oauth_client
        self._issuer = session_issuer
        self._clock = clock
        self._refresh_margin = timedelta(seconds=oauth_settings.refresh_margin_seconds)
        self._default_expires_in = oauth_settings.default_expires_in
        self._serialize_refresh = oauth_settings.serialize_refresh
        # Entries disappear once no caller holds the lock.
        self._refresh_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def is_expired(self, record: FleetTokenRecord) -> bool:
        return is_token_expired(
            record.expires_at, now=self._clock(), margin=self._refresh_margin
        )

    def _parse(self, raw: Dict[str, Any]) -> TokenGrant:
        return parse_token_response(
            raw, now=self._clock(), default_expires_in=self._default_expires_in
        )

    def _refresh_guard(self, user_id: int) -> AsyncContextManager[Any]:
        if not self._serialize_refresh:
            return contextlib.nullcontext()
        lock = self._refresh_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._refresh_locks[user_id] = lock
        return lock

    async def initiate_login(self) -> LoginRequest:
        """Start an authorization attempt and return the provider consent URL."""
        state = generate_state()
        pkce = generate_pkce()
        await self._sessions.put(state, pkce.verifier)
        url = self._oauth.build_authorization_url(state=state, code_challenge=pkce.challenge)
        return LoginRequest(authorization_url=url, state=state)

    async def handle_callback(
        self,
        *,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> CallbackResult:
        """
        Complete an authorization attempt.

        The session is consumed before the code exchange, so a failed exchange
        still spends the attempt and a replayed callback is rejected.
        """
        if error:
            raise InvalidOAuthRequestError(f"OAuth error: {error}")
        if not code or not state:
            raise InvalidOAuthRequestError("Missing code or state parameter.")

        code_verifier = await self._sessions.consume(state)
        if code_verifier is None:
            raise OAuthSessionExpiredError("Invalid or expired state parameter.")

        try:
            raw = await self._oauth.exchange_authorization_code(code, code_verifier)
            grant = self._parse(raw)
        except OAuthProviderError as exc:
            logger.error("Authorization code exchange failed: %s", exc)
            raise OAuthTokenExchangeError(
                "Authentication failed.", retryable=exc.retryable
            ) from exc
        except (ValueError, OverflowError) as exc:
            logger.error("Authorization code exchange returned an unusable payload: %s", exc)
            raise OAuthTokenExchangeError("Authentication failed.") from exc

        user = await self._resolve_user(grant)
        await self._tokens.upsert_token(user.id, grant, updated_at=self._clock())
        user = await self._users.update_last_login(user.id) or user

        logger.info("User %s completed fleet authentication", user.id)
        return CallbackResult(user=user, app_session_token=self._issuer.issue(user))

    @staticmethod
    def _identity_claims(id_token: Optional[str]) -> Dict[str, Any]:
        if not id_token:
            return {}
        try:
            # Received directly from the token endpoint over TLS.
            return jwt.decode(id_token, options={"verify_signature": False})
        except jwt.InvalidTokenError as exc:
            logger.warning("Ignoring unreadable id_token: %s", exc)
            return {}

    async def _resolve_user(self, grant: TokenGrant) -> User:
        claims = self._identity_claims(grant.id_token)
        external_id = str(claims["sub"]) if claims.get("sub") else None
        email = claims.get("email")

        user: Optional[User] = None
        if external_id:
            user = await self._users.find_by_external_id(external_id)
        if user is None and email:
            user = await self._users.find_by_email(email)
            if user is not None and external_id and not user.external_user_id:
                user = await self._users.link_external_id(user.id, external_id) or user
        if user is None:
            user = await self._users.create_user(
                email=email or f"fleet_user_{secrets.token_hex(8)}@{self.PLACEHOLDER_EMAIL_DOMAIN}",
                name=claims.get("name") or "Fleet User",
                external_user_id=external_id,
            )
            logger.info("Provisioned user %s", user.id)
        return user

    async def _load_record(self, user_id: int) -> FleetTokenRecord:
        try:
            record = await self._tokens.get_token(user_id)
        except ValueError as exc:
            logger.warning("Stored token for user %s is unreadable: %s", user_id, exc)
            raise OAuthTokenNotFoundError(
                "Stored fleet tokens are unreadable; please log in again."
            ) from exc
        if record is None:
            raise OAuthTokenNotFoundError(f"No fleet tokens stored for user {user_id}.")
        return record

    async def get_valid_access_token(self, user_id: int) -> str:
        """Return an access token that stays valid beyond the refresh margin."""
        record = await self._load_record(user_id)
        if not self.is_expired(record):
            return record.access_token

        async with self._refresh_guard(user_id):
            # Another request may have refreshed while this one waited.
            record = await self._load_record(user_id)
            if not self.is_expired(record):
                return record.access_token
            record = await self._refresh_record(record)
        return record.access_token

    async def refresh(self, user_id: int) -> FleetTokenRecord:
        """Refresh the user's tokens regardless of their expiry."""
        async with self._refresh_guard(user_id):
            record = await self._load_record(user_id)
            return await self._refresh_record(record)

    async def _refresh_record(self, record: FleetTokenRecord) -> FleetTokenRecord:
        if not record.refresh_token:
            raise OAuthTokenRefreshError(
                "No refresh token stored; re-authentication required."
            )
        try:
            raw = await self._oauth.refresh_token(record.refresh_token)
            grant = self._parse(raw)
        except OAuthProviderError as exc:
            logger.warning("Token refresh failed for user %s: %s", record.user_id, exc)
            raise OAuthTokenRefreshError(
                "Failed to refresh access token.", retryable=exc.retryable
            ) from exc
        except (ValueError, OverflowError) as exc:
            logger.warning("Token refresh for user %s returned an unusable payload", record.user_id)
            raise OAuthTokenRefreshError("Failed to refresh access token.") from exc

        refreshed = await self._tokens.upsert_token(
            record.user_id, grant, updated_at=self._clock()
        )
        logger.info("Refreshed fleet tokens for user %s", record.user_id)
        return refreshed

    async def logout(self, user_id: int) -> bool:
        """Revoke remotely when possible, then always delete the local row."""
        try:
            record = await self._tokens.get_token(user_id)
        except ValueError as exc:
            logger.warning("Stored token for user %s is unreadable: %s", user_id, exc)
            record = None

        if record is not None:
            try:
                await self._oauth.revoke_token(record.access_token)
            except OAuthProviderError as exc:
                logger.warning("Token revocation failed for user %s: %s", user_id, exc)

        return await self._tokens.delete_token(user_id)

    async def get_status(self, user_id: int) -> AuthStatus:
        try:
            record = await self._load_record(user_id)
        except OAuthTokenNotFoundError:
            return AuthStatus(authenticated=False, needs_refresh=True)
        return AuthStatus(
            authenticated=True,
            needs_refresh=self.is_expired(record),
            expires_at=record.expires_at,
        )


__all__ = ["CallbackResult", "FleetTokenService", "LoginRequest"]
