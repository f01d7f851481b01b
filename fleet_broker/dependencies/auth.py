"""Resolve the calling user from the app session bearer token."""

from typing import Annotated, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fleet_broker.services import AppSessionIssuer

from .clients import get_app_session_issuer

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    issuer: Annotated[AppSessionIssuer, Depends(get_app_session_issuer)],
) -> int:
    """Return the user id carried by ``Authorization: Bearer <app token>``."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required."
        )
    try:
        return issuer.user_id_from_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="App session has expired."
        ) from None
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid app session token."
        ) from None


__all__ = ["bearer_scheme", "get_current_user_id"]
