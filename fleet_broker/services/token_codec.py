"""
Conversion of provider token responses into normalized token grants.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from fleet_broker.models.oauth import TokenGrant

DEFAULT_EXPIRES_IN = 3600
REFRESH_MARGIN = timedelta(minutes=5)
MAX_EXPIRES_IN = 10 * 365 * 24 * 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _coerce_expires_in(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    seconds = int(number)
    if seconds <= 0:
        return default
    return min(seconds, MAX_EXPIRES_IN)


def _parse_scopes(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    items = value.split(" ") if isinstance(value, str) else list(value)
    # dict preserves first-seen order
    return tuple(dict.fromkeys(item.strip() for item in items if item and item.strip()))


def parse_token_response(
    raw: Mapping[str, Any],
    *,
    now: datetime | None = None,
    default_expires_in: int = DEFAULT_EXPIRES_IN,
) -> TokenGrant:
    """
    Normalize a token endpoint payload.

    ``expires_at`` is computed from ``now`` (the time the response was
    received), never taken from the provider. Raises ``ValueError`` when the
    payload carries no access token.
    """
    access_token = raw.get("access_token")
    if not access_token:
        raise ValueError("Token payload is missing access_token.")

    issued_at = _as_utc(now or _utcnow())
    expires_in = _coerce_expires_in(raw.get("expires_in"), default_expires_in)

    return TokenGrant(
        access_token=access_token,
        refresh_token=raw.get("refresh_token") or None,
        token_type=raw.get("token_type") or "Bearer",
        expires_in=expires_in,
        expires_at=issued_at + timedelta(seconds=expires_in),
        scopes=_parse_scopes(raw.get("scope")),
        id_token=raw.get("id_token") or None,
    )


def is_token_expired(
    expires_at: datetime,
    *,
    now: datetime | None = None,
    margin: timedelta = REFRESH_MARGIN,
) -> bool:
    """Return True when the token expires within ``margin`` of ``now``."""
    current = _as_utc(now or _utcnow())
    return _as_utc(expires_at) <= current + margin


__all__ = [
    "DEFAULT_EXPIRES_IN",
    "MAX_EXPIRES_IN",
    "REFRESH_MARGIN",
    "is_token_expired",
    "parse_token_response",
]
