"""
One-time-per-domain partner registration with the fleet provider.

Registration uses a service-level token from the client credentials grant,
never a user token. The provider answers 409 when the domain is already
registered; that is treated as success, so registration is safe to repeat on
every startup.
"""

from __future__ import annotations

import logging
from typing import Optional, Set

from fleet_broker.clients.fleet_api import FleetApiClient, FleetApiError
from fleet_broker.clients.fleet_auth import (
    FleetOAuthClient,
    OAuthProviderError,
    PartnerRegistrationError,
)
from fleet_broker.models.oauth import RegistrationResult

logger = logging.getLogger(__name__)


class PartnerRegistrationService:
    """Tracks the process-wide registration state of this deployment."""

    def __init__(
        self,
        oauth_client: FleetOAuthClient,
        api_client: FleetApiClient,
        *,
        default_domain: Optional[str] = None,
    ) -> None:
        self._oauth = oauth_client
        self._api = api_client
        self._default_domain = default_domain
        self._registered: Set[str] = set()
        self.last_result: Optional[RegistrationResult] = None

    @property
    def default_domain(self) -> Optional[str]:
        return self._default_domain

    def is_registered(self, domain: Optional[str] = None) -> bool:
        target = domain or self._default_domain
        return bool(target) and target in self._registered

    async def register_domain(self, domain: Optional[str] = None) -> RegistrationResult:
        target = domain or self._default_domain
        if not target:
            raise PartnerRegistrationError(
                "Developer domain required; set FLEET_DEVELOPER_DOMAIN or FLEET_REDIRECT_URI."
            )

        try:
            partner_token = await self._oauth.get_partner_token()
        except OAuthProviderError as exc:
            raise PartnerRegistrationError(
                "Could not obtain a partner token.", retryable=exc.retryable
            ) from exc

        try:
            payload = await self._api.register_partner_account(partner_token, target)
            result = RegistrationResult(domain=target, payload=payload)
        except FleetApiError as exc:
            if exc.status_code != 409:
                raise PartnerRegistrationError(
                    f"Partner registration for {target} failed.",
                    retryable=exc.retryable,
                ) from exc
            result = RegistrationResult(domain=target, already_registered=True)

        self._registered.add(target)
        self.last_result = result
        if result.already_registered:
            logger.info("Domain %s already registered with the fleet provider", target)
        else:
            logger.info("Registered domain %s with the fleet provider", target)
        return result

    async def register_on_startup(self) -> Optional[RegistrationResult]:
        """Attempt registration without ever failing application startup."""
        try:
            return await self.register_domain()
        except PartnerRegistrationError as exc:
            logger.warning(
                "Partner registration failed; protected vehicle data will be unavailable: %s",
                exc,
            )
            return None


__all__ = ["PartnerRegistrationService"]
