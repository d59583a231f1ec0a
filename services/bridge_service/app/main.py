"""FastAPI application for the gym access bridge."""
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.errors import RemoteError
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from services.bridge_service.dependencies import get_device_client
from services.bridge_service.routers import (
    attendance_router,
    device_router,
    health_router,
    sync_router,
)

logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(
        f"Gym access bridge started for site {settings.SITE_ID}",
        extra={
            "extra_fields": {
                "environment": settings.ENVIRONMENT,
                "backend_url": settings.BACKEND_URL,
                "device_host": settings.DEVICE_HOST,
            }
        },
    )
    if settings.DEVICE_CALLBACK_URL:
        try:
            await get_device_client().configure_event_push(settings.DEVICE_CALLBACK_URL)
        except RemoteError as e:
            # The pull job still collects events while push is not configured.
            logger.warning(f"Could not configure device event push: {e.message}")
    yield
    logger.info("Gym access bridge shutting down")


def create_app() -> FastAPI:
    """Create and configure the bridge FastAPI app."""
    app = FastAPI(
        title="Gym Access Bridge",
        version=VERSION,
        description="Keeps the access-control device in sync with membership "
        "and forwards attendance to the backend.",
        lifespan=lifespan,
    )

    # Add observability (structured logging + request tracing)
    add_observability_middleware(app)

    # Structured {"success": false, "error": ...} bodies for every failure
    add_exception_handlers(app)

    @app.get("/", tags=["system"])
    async def root() -> dict:
        """Service identity and endpoint map."""
        return {
            "name": "Gym Access Bridge",
            "version": VERSION,
            "status": "running",
            "site_id": get_settings().SITE_ID,
            "endpoints": {
                "health": "/health",
                "sync": "/sync",
                "attendance": "/attendance",
                "device": "/device",
            },
        }

    app.include_router(health_router)
    app.include_router(sync_router)
    app.include_router(attendance_router)
    app.include_router(device_router)

    return app


app = create_app()
