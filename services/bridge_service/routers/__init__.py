"""Bridge service routers."""

from services.bridge_service.routers.attendance import router as attendance_router
from services.bridge_service.routers.device import router as device_router
from services.bridge_service.routers.health import router as health_router
from services.bridge_service.routers.sync import router as sync_router

__all__ = [
    "attendance_router",
    "device_router",
    "health_router",
    "sync_router",
]
