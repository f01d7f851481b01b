"""HTTP utilities: bearer request signing and retry/backoff semantics."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping

import httpx

RETRYABLE_STATUSES = frozenset({500, 502, 503, 504})


class RetryConfig:
    def __init__(
        self,
        *,
        attempts: int = 3,
        backoff_seconds: float = 1.0,
        retry_statuses: frozenset[int] = RETRYABLE_STATUSES,
    ) -> None:
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self.retry_statuses = retry_statuses


def build_bearer_request(
    access_token: str,
    method: str,
    url: str,
    *,
    params: Mapping[str, Any] | None = None,
    json: Any = None,
) -> httpx.Request:
    """Build a request authorized with ``access_token``; nothing is sent."""
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json",
    }
    return httpx.Request(method, url, params=params, json=json, headers=headers)


async def request_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """
    Await ``func`` until it yields a non-retryable response.

    Transport errors (timeouts included) and retryable 5xx statuses are retried
    with linear backoff. Other responses, 4xx included, are returned unchanged
    for the caller to interpret. The last transport error is re-raised once
    attempts are exhausted.
    """
    config = retry_config or RetryConfig()
    attempt = 0
    last_exception: Exception | None = None
    response: httpx.Response | None = None

    while attempt < config.attempts:
        try:
            response = await func(*args, **kwargs)
            last_exception = None
            if response.status_code not in config.retry_statuses:
                return response
        except httpx.TransportError as exc:
            last_exception = exc
        attempt += 1
        if attempt < config.attempts:
            await asyncio.sleep(config.backoff_seconds * attempt)

    if last_exception is not None:
        raise last_exception
    if response is not None:
        return response
    raise RuntimeError("Request failed without raising an exception")


__all__ = ["RETRYABLE_STATUSES", "RetryConfig", "build_bearer_request", "request_with_retry"]
