"""
FastAPI application entrypoint for the fleet OAuth broker.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from fleet_broker.api.routes import router as api_router
from fleet_broker.core.config import get_settings
from fleet_broker.core.logging import configure_logging
from fleet_broker.dependencies import get_partner_registration_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Register the partner domain on startup; failures only degrade service."""
    if get_settings().register_partner_on_startup:
        await get_partner_registration_service().register_on_startup()
    yield


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Fleet Broker",
        version="0.1.0",
        description="OAuth2/PKCE broker and vehicle data proxy for a fleet telematics API.",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix=settings.api_base_path)
    return app


app = create_app()

__all__ = ["app", "create_app", "lifespan"]
