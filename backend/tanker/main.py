# backend/tanker/main.py
"""
FastAPI application for the tanker booking platform.

The lifespan builds one persistence adapter and one instance of each service
and keeps them on app.state; routes receive them through Depends.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, FastAPI, Request

from .core.config import is_running_tests, settings
from .core.log_config import configure_logging
from .repositories.base_repository import PersistenceAdapter
from .repositories.factory import AdapterFactory
from .routes.v1 import bookings as bookings_v1
from .routes.v1 import payments as payments_v1
from .services.booking_lifecycle import BookingLifecycle
from .services.payment_coordinator import PaymentCoordinator

logger = logging.getLogger(__name__)

API_TITLE = "Tanker Booking API"
API_VERSION = "1.0.0"


def create_app(adapter: Optional[PersistenceAdapter] = None) -> FastAPI:
    """
    Build the application.

    Args:
        adapter: Adapter to serve from; built from settings when omitted
    """

    @asynccontextmanager
    async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Handle application startup/shutdown."""
        configure_logging()
        logger.info(f"{API_TITLE} starting up...")
        logger.info(f"Environment: {settings.environment}")
        if is_running_tests():
            logger.info("Running under pytest (test mode active)")

        active = adapter or AdapterFactory.create_adapter()
        await active.initialize()
        app.state.adapter = active
        app.state.booking_lifecycle = BookingLifecycle(active)
        app.state.payment_coordinator = PaymentCoordinator(active)
        logger.info(f"Serving from the {active.name} adapter (push updates: {active.supports_push})")
        if settings.is_production and active.name == "local":
            logger.warning("Production is being served from the on-device store")

        yield

        logger.info(f"{API_TITLE} shutting down...")
        await active.close()

    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=app_lifespan)

    # Create API v1 router
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    api_v1.include_router(payments_v1.router, prefix="/payments")
    app.include_router(api_v1)

    @app.get("/health")
    async def health_check(request: Request) -> dict:
        active = getattr(request.app.state, "adapter", None)
        return {"status": "healthy", "backend": active.name if active else None}

    return app


app = create_app()
