"""
FastAPI routes for the fleet OAuth broker.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from fleet_broker.clients.fleet_api import FleetApiError
from fleet_broker.clients.fleet_auth import (
    FleetAuthError,
    InvalidOAuthRequestError,
    OAuthSessionExpiredError,
    OAuthTokenNotFoundError,
)
from fleet_broker.core.config import AppSettings
from fleet_broker.dependencies import (
    get_app_settings,
    get_current_user_id,
    get_fleet_token_service,
    get_partner_registration_service,
    get_user_store,
    get_vehicle_data_service,
)
from fleet_broker.models.vehicle import MetricsPeriod
from fleet_broker.schemas import (
    AuthStatusResponse,
    CallbackResponse,
    LoginResponse,
    LogoutResponse,
    PartnerRegistrationResponse,
    PartnerStatusResponse,
    RefreshResponse,
    UserSummary,
    VehicleDataResponse,
    VehicleListResponse,
    VehicleMetricsResponse,
    VehicleResponse,
    VehicleWakeResponse,
)
from fleet_broker.services import (
    FleetTokenService,
    PartnerRegistrationService,
    UserStore,
    VehicleDataService,
    VehicleNotFoundError,
)

router = APIRouter()
logger = logging.getLogger(__name__)

CurrentUserId = Annotated[int, Depends(get_current_user_id)]
TokenServiceDep = Annotated[FleetTokenService, Depends(get_fleet_token_service)]
VehicleServiceDep = Annotated[VehicleDataService, Depends(get_vehicle_data_service)]
VehicleLookupErrors = (FleetAuthError, FleetApiError, VehicleNotFoundError)


def _to_http_error(exc: Exception) -> HTTPException:
    """Map lifecycle and adapter failures onto HTTP responses."""
    if isinstance(exc, VehicleNotFoundError):
        return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Vehicle not found.")
    if isinstance(exc, (InvalidOAuthRequestError, OAuthSessionExpiredError)):
        return HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc))
    if isinstance(exc, OAuthTokenNotFoundError):
        return HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Fleet account not connected; please log in.",
        )
    if isinstance(exc, FleetAuthError):
        status_code = HTTPStatus.GATEWAY_TIMEOUT if exc.retryable else HTTPStatus.BAD_GATEWAY
        return HTTPException(status_code=status_code, detail=str(exc))
    if isinstance(exc, FleetApiError):
        if exc.is_auth_error:
            return HTTPException(
                status_code=HTTPStatus.UNAUTHORIZED,
                detail="Fleet API rejected the access token.",
            )
        status_code = HTTPStatus.SERVICE_UNAVAILABLE if exc.retryable else HTTPStatus.BAD_GATEWAY
        return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=HTTPStatus.INTERNAL_SERVER_ERROR, detail="Unexpected error.")


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/login", response_model=LoginResponse)
async def start_login(
    request: Request,
    token_service: TokenServiceDep,
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the provider consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating state, PKCE values and the consent URL.
    """
    login = await token_service.initiate_login()
    if redirect or _wants_html(request):
        return RedirectResponse(
            url=login.authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    return LoginResponse(auth_url=login.authorization_url, state=login.state)


@router.get("/auth/callback", response_model=CallbackResponse)
async def handle_oauth_callback(
    request: Request,
    token_service: TokenServiceDep,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    code: Optional[str] = Query(default=None, description="Authorization code."),
    state: Optional[str] = Query(default=None, description="OAuth state value."),
    error: Optional[str] = Query(default=None, description="Provider-reported error."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect to the app deep link instead of returning JSON.",
    ),
) -> Any:
    """Complete the OAuth exchange, store tokens and hand back an app session."""
    try:
        result = await token_service.handle_callback(code=code, state=state, error=error)
    except FleetAuthError as exc:
        raise _to_http_error(exc) from exc

    target = settings.app_redirect_uri
    if target and (redirect or _wants_html(request)):
        separator = "&" if "?" in target else "?"
        query = urlencode({"token": result.app_session_token, "user_id": result.user.id})
        return RedirectResponse(
            url=f"{target}{separator}{query}", status_code=HTTPStatus.TEMPORARY_REDIRECT
        )

    user = result.user
    return CallbackResponse(
        token=result.app_session_token,
        user=UserSummary(id=user.id, email=user.email, name=user.name),
    )


@router.post("/auth/refresh", response_model=RefreshResponse)
async def refresh_tokens(user_id: CurrentUserId, token_service: TokenServiceDep) -> RefreshResponse:
    try:
        record = await token_service.refresh(user_id)
    except FleetAuthError as exc:
        raise _to_http_error(exc) from exc
    return RefreshResponse(expires_at=record.expires_at)


@router.post("/auth/logout", response_model=LogoutResponse)
async def logout(user_id: CurrentUserId, token_service: TokenServiceDep) -> LogoutResponse:
    """Revoke tokens remotely when possible and always forget them locally."""
    await token_service.logout(user_id)
    return LogoutResponse()


@router.get("/auth/status", response_model=AuthStatusResponse)
async def auth_status(
    user_id: CurrentUserId,
    token_service: TokenServiceDep,
    user_store: Annotated[UserStore, Depends(get_user_store)],
) -> AuthStatusResponse:
    user = await user_store.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="User not found.")
    status = await token_service.get_status(user_id)
    return AuthStatusResponse(
        user=UserSummary(id=user.id, email=user.email, name=user.name),
        is_authenticated=status.authenticated,
        needs_refresh=status.needs_refresh,
        expires_at=status.expires_at,
    )


@router.post("/partner/register", response_model=PartnerRegistrationResponse)
async def register_partner(
    _user_id: CurrentUserId,
    registrar: Annotated[PartnerRegistrationService, Depends(get_partner_registration_service)],
    domain: Optional[str] = Query(
        default=None, description="Domain to register; defaults to the configured one."
    ),
) -> PartnerRegistrationResponse:
    try:
        result = await registrar.register_domain(domain)
    except FleetAuthError as exc:
        raise _to_http_error(exc) from exc
    message = (
        "Already registered with the fleet provider"
        if result.already_registered
        else "Successfully registered with the fleet provider"
    )
    return PartnerRegistrationResponse(
        message=message,
        domain=result.domain,
        already_registered=result.already_registered,
        data=result.payload,
    )


@router.get("/partner/status", response_model=PartnerStatusResponse)
async def partner_status(
    registrar: Annotated[PartnerRegistrationService, Depends(get_partner_registration_service)],
) -> PartnerStatusResponse:
    return PartnerStatusResponse(
        registered=registrar.is_registered(), domain=registrar.default_domain
    )


@router.get("/vehicles", response_model=VehicleListResponse)
async def list_vehicles(
    user_id: CurrentUserId,
    service: VehicleServiceDep,
) -> VehicleListResponse:
    try:
        vehicles = await service.list_vehicles(user_id=user_id)
    except (FleetAuthError, FleetApiError) as exc:
        raise _to_http_error(exc) from exc
    return VehicleListResponse(vehicles=vehicles)


@router.get("/vehicles/{vehicle_id}", response_model=VehicleResponse)
async def get_vehicle(
    vehicle_id: int,
    user_id: CurrentUserId,
    service: VehicleServiceDep,
) -> VehicleResponse:
    try:
        vehicle = await service.get_vehicle(user_id=user_id, vehicle_id=vehicle_id)
    except VehicleLookupErrors as exc:
        raise _to_http_error(exc) from exc
    return VehicleResponse(vehicle=vehicle)


@router.get("/vehicles/{vehicle_id}/data", response_model=VehicleDataResponse)
async def get_vehicle_data(
    vehicle_id: int,
    user_id: CurrentUserId,
    service: VehicleServiceDep,
) -> VehicleDataResponse:
    """Return raw vehicle data plus a flattened metrics snapshot."""
    try:
        vehicle_data, metrics = await service.get_vehicle_data(
            user_id=user_id, vehicle_id=vehicle_id
        )
    except VehicleLookupErrors as exc:
        raise _to_http_error(exc) from exc
    return VehicleDataResponse(vehicle=vehicle_data, metrics=metrics)


@router.post("/vehicles/{vehicle_id}/wake", response_model=VehicleWakeResponse)
async def wake_vehicle(
    vehicle_id: int,
    user_id: CurrentUserId,
    service: VehicleServiceDep,
) -> VehicleWakeResponse:
    try:
        vehicle, state = await service.wake_up(user_id=user_id, vehicle_id=vehicle_id)
    except VehicleLookupErrors as exc:
        raise _to_http_error(exc) from exc
    return VehicleWakeResponse(vehicle=vehicle, state=state)


@router.get("/vehicles/{vehicle_id}/metrics", response_model=VehicleMetricsResponse)
async def get_vehicle_metrics(
    vehicle_id: int,
    user_id: CurrentUserId,
    service: VehicleServiceDep,
    period: MetricsPeriod = Query(default="trip", description="Reporting period."),
) -> VehicleMetricsResponse:
    """Return dashboard figures in metric units."""
    try:
        metrics = await service.get_metrics(
            user_id=user_id, vehicle_id=vehicle_id, period=period
        )
    except VehicleLookupErrors as exc:
        raise _to_http_error(exc) from exc
    return VehicleMetricsResponse(metrics=metrics)
