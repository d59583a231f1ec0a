import time
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from libs.common.config import Settings, get_settings
from libs.common.datetime_utils import utc_now
from libs.common.errors import PersistenceError, RemoteError
from libs.common.logging import get_logger
from services.bridge_service.clients.backend import BackendClient
from services.bridge_service.clients.device import DeviceClient
from services.bridge_service.dependencies import (
    get_backend_client,
    get_device_client,
    get_durable_queue,
)
from services.bridge_service.schemas import HealthResponse, QueueHealth, ServiceCheck
from services.bridge_service.services.durable_queue import DurableQueue

router = APIRouter(prefix="/health", tags=["system"])
logger = get_logger(__name__)

_STARTED_AT = time.monotonic()


async def _probe(name: str, check: Callable[[], Awaitable[None]]) -> ServiceCheck:
    try:
        await check()
    except RemoteError as e:
        logger.error(f"{name} health check failed: {e.message}")
        return ServiceCheck(status="unhealthy", error=e.message)
    return ServiceCheck(status="healthy")


@router.get("", response_model=HealthResponse)
async def get_health(
    settings: Settings = Depends(get_settings),
    backend: BackendClient = Depends(get_backend_client),
    device: DeviceClient = Depends(get_device_client),
    queue: DurableQueue = Depends(get_durable_queue),
):
    """
    Aggregate health: remotes, queue depth, uptime and the active site.
    """
    services = {
        "backend": await _probe("Backend", backend.test_connection),
        "device": await _probe("Device", device.test_connection),
    }

    try:
        queue_health = QueueHealth(size=queue.size())
    except PersistenceError as e:
        logger.critical(f"Queue health check failed: {e.message}")
        queue_health = QueueHealth(error=e.message)

    if queue_health.error:
        status = "unhealthy"
    elif any(check.status != "healthy" for check in services.values()):
        status = "degraded"
    else:
        status = "healthy"

    health = HealthResponse(
        status=status,
        timestamp=utc_now(),
        uptime_seconds=round(time.monotonic() - _STARTED_AT, 1),
        config={
            "site_id": settings.SITE_ID,
            "backend_url": settings.BACKEND_URL,
            "device_host": settings.DEVICE_HOST,
        },
        services=services,
        queue=queue_health,
    )
    return JSONResponse(
        status_code=503 if status == "unhealthy" else 200,
        content=health.model_dump(mode="json"),
    )


@router.get("/device")
async def check_device(
    settings: Settings = Depends(get_settings),
    device: DeviceClient = Depends(get_device_client),
):
    """
    Check the access-control device is reachable.
    """
    target = {"host": settings.DEVICE_HOST, "port": settings.DEVICE_PORT}
    check = await _probe("Device", device.test_connection)
    if check.status != "healthy":
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": check.error, "device": target},
        )
    return {"success": True, "message": "Device is reachable", "device": target}


@router.get("/backend")
async def check_backend(
    settings: Settings = Depends(get_settings),
    backend: BackendClient = Depends(get_backend_client),
):
    """
    Check the membership backend is reachable for this site.
    """
    target = {"url": settings.BACKEND_URL, "site_id": settings.SITE_ID}
    check = await _probe("Backend", backend.test_connection)
    if check.status != "healthy":
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": check.error, "backend": target},
        )
    return {"success": True, "message": "Backend is reachable", "backend": target}
