"""Signed app session tokens handed to clients after a successful login."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

import jwt

from fleet_broker.core.config import SecuritySettings
from fleet_broker.models.user import User

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AppSessionIssuer:
    """Issue and verify HS256 JWTs identifying a broker user."""

    def __init__(
        self,
        security_settings: SecuritySettings,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        secret = security_settings.jwt_secret
        if not secret:
            # Tokens will not survive a restart.
            logger.warning(
                "JWT_SECRET not configured; using an ephemeral secret for this process."
            )
            secret = secrets.token_urlsafe(32)
        self._secret = secret
        self._algorithm = security_settings.jwt_algorithm
        self._ttl = timedelta(seconds=security_settings.app_session_ttl_seconds)
        self._clock = clock

    def issue(self, user: User) -> str:
        now = self._clock()
        payload: Dict[str, Any] = {
            "sub": str(user.id),
            "email": user.email,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        """Return the verified claims; raises ``jwt.InvalidTokenError``."""
        return jwt.decode(token, self._secret, algorithms=[self._algorithm])

    def user_id_from_token(self, token: str) -> int:
        claims = self.decode(token)
        try:
            return int(claims["sub"])
        except (KeyError, TypeError, ValueError) as exc:
            raise jwt.InvalidTokenError("Token subject is not a user id.") from exc


__all__ = ["AppSessionIssuer"]
